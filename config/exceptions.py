"""Custom exception hierarchy for the document-state engine."""

from typing import Optional


class InkwellError(Exception):
    """Base exception for all inkwell errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Storage Errors ----

class StorageError(InkwellError):
    """Persistence adapter operation failed."""

    def __init__(self, message: str, operation: str = "", table: str = ""):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details)
        self.operation = operation
        self.table = table


# ---- Outline Errors ----

class OutlineError(InkwellError):
    """Base exception for outline (chapter forest) problems."""


class OutlineCycleError(OutlineError):
    """A parent chain loops back on itself.

    Only used to describe a repair in the logs; load_tree heals cycles
    instead of raising.
    """

    def __init__(self, node_id: int, path: list[int]):
        super().__init__(
            f"Chapter {node_id} is part of a parent cycle",
            {"node_id": node_id, "path": path},
        )
        self.node_id = node_id
        self.path = path

