"""SQLite persistence adapter: keyed collections with ordered queries and atomic batches."""

import logging
import shutil
import sqlite3
from contextlib import contextmanager, nullcontext
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

from config.exceptions import StorageError
from models.block import TextBlock, derived_client_key
from models.enums import NodeType
from models.outline import ChapterNode

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id INTEGER NOT NULL,
    parent_id INTEGER REFERENCES chapters(id),
    title TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'chapter',
    "order" INTEGER NOT NULL DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS text_blocks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chapter_id INTEGER NOT NULL REFERENCES chapters(id),
    project_id INTEGER NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    "order" INTEGER NOT NULL DEFAULT 0
);
"""

# Indexes added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chapters_project ON chapters(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_chapters_parent ON chapters(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_text_blocks_chapter ON text_blocks(chapter_id)",
    "CREATE INDEX IF NOT EXISTS idx_text_blocks_project ON text_blocks(project_id)",
]


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _chapter_to_row(node: ChapterNode) -> dict:
    return {
        "project_id": node.project_id,
        "parent_id": node.parent_id,
        "title": node.title,
        "type": node.type,
        "order": node.order,
        "created_at": node.created_at or datetime.now(),
    }


def _row_to_chapter(row: sqlite3.Row) -> ChapterNode:
    created = row["created_at"]
    return ChapterNode(
        id=row["id"], project_id=row["project_id"],
        parent_id=row["parent_id"], title=row["title"],
        type=NodeType(row["type"]), order=row["order"],
        created_at=datetime.fromisoformat(created) if created else None,
    )


def _block_to_row(block: TextBlock) -> dict:
    return {
        "chapter_id": block.chapter_id,
        "project_id": block.project_id,
        "content": block.content,
        "order": block.order,
    }


def _row_to_block(row: sqlite3.Row) -> TextBlock:
    return TextBlock(
        id=row["id"], client_key=derived_client_key(row["id"]),
        chapter_id=row["chapter_id"], project_id=row["project_id"],
        content=row["content"], order=row["order"],
    )


class Table:
    """One collection of records, addressable by equality filters on its columns.

    Every method opens its own connection unless the table is bound to a
    Transaction, in which case all calls share the transaction's connection.
    """

    def __init__(
        self,
        name: str,
        columns: tuple[str, ...],
        to_row: Callable[[Any], dict],
        from_row: Callable[[sqlite3.Row], Any],
        connect: Callable[[], Any],
    ):
        self.name = name
        self.columns = columns
        self._to_row = to_row
        self._from_row = from_row
        self._connect = connect

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            logger.error("%s on %s failed: %s", operation, self.name, e)
            raise StorageError(f"sqlite error: {e}", operation=operation, table=self.name) from e

    def _where_clause(self, filters: dict) -> tuple[str, list]:
        parts = []
        params = []
        for column, value in filters.items():
            if column not in self.columns:
                raise ValueError(f"Unknown column for {self.name}: {column}")
            if value is None:
                parts.append(f'"{column}" IS NULL')
            else:
                parts.append(f'"{column}" = ?')
                params.append(_to_sql_value(value))
        clause = " WHERE " + " AND ".join(parts) if parts else ""
        return clause, params

    def get(self, record_id: int) -> Optional[Any]:
        with self._connect() as conn, self._guard("get"):
            row = conn.execute(
                f"SELECT * FROM {self.name} WHERE id = ?", (record_id,)
            ).fetchone()
            return self._from_row(row) if row else None

    def where(self, **filters) -> list:
        """Return records matching every filter, sorted by order then id."""
        clause, params = self._where_clause(filters)
        with self._connect() as conn, self._guard("where"):
            rows = conn.execute(
                f'SELECT * FROM {self.name}{clause} ORDER BY "order", id', params
            ).fetchall()
            return [self._from_row(r) for r in rows]

    def count(self, **filters) -> int:
        clause, params = self._where_clause(filters)
        with self._connect() as conn, self._guard("count"):
            row = conn.execute(f"SELECT COUNT(*) AS n FROM {self.name}{clause}", params).fetchone()
            return row["n"]

    def add(self, record) -> int:
        row = {k: _to_sql_value(v) for k, v in self._to_row(record).items()}
        columns = ", ".join(f'"{c}"' for c in row)
        placeholders = ", ".join("?" for _ in row)
        with self._connect() as conn, self._guard("add"):
            cursor = conn.execute(
                f"INSERT INTO {self.name} ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
            logger.debug("add %s id=%d", self.name, cursor.lastrowid)
            return cursor.lastrowid

    def update(self, record_id: int, **fields) -> None:
        if not fields:
            return
        for column in fields:
            if column not in self.columns or column == "id":
                raise ValueError(f"Cannot update column {column} of {self.name}")
        assignments = ", ".join(f'"{c}" = ?' for c in fields)
        params = [_to_sql_value(v) for v in fields.values()] + [record_id]
        with self._connect() as conn, self._guard("update"):
            conn.execute(f"UPDATE {self.name} SET {assignments} WHERE id = ?", params)
        logger.debug("update %s id=%d fields=%s", self.name, record_id, sorted(fields))

    def delete(self, record_id: int) -> None:
        with self._connect() as conn, self._guard("delete"):
            conn.execute(f"DELETE FROM {self.name} WHERE id = ?", (record_id,))
        logger.debug("delete %s id=%d", self.name, record_id)

    def bulk_delete(self, record_ids: Iterable[int]) -> None:
        ids = [(i,) for i in record_ids]
        if not ids:
            return
        with self._connect() as conn, self._guard("bulk_delete"):
            conn.executemany(f"DELETE FROM {self.name} WHERE id = ?", ids)
        logger.debug("bulk_delete %s count=%d", self.name, len(ids))

    def delete_where(self, **filters) -> int:
        if not filters:
            raise ValueError("delete_where needs at least one filter")
        clause, params = self._where_clause(filters)
        with self._connect() as conn, self._guard("delete_where"):
            cursor = conn.execute(f"DELETE FROM {self.name}{clause}", params)
            return cursor.rowcount


_CHAPTER_COLUMNS = ("id", "project_id", "parent_id", "title", "type", "order", "created_at")
_BLOCK_COLUMNS = ("id", "chapter_id", "project_id", "content", "order")


class _Collections:
    """Mixin exposing the chapters/text_blocks tables over a connect factory."""

    def _connection_factory(self) -> Callable[[], Any]:
        raise NotImplementedError

    @property
    def chapters(self) -> Table:
        return Table("chapters", _CHAPTER_COLUMNS, _chapter_to_row, _row_to_chapter,
                     self._connection_factory())

    @property
    def text_blocks(self) -> Table:
        return Table("text_blocks", _BLOCK_COLUMNS, _block_to_row, _row_to_block,
                     self._connection_factory())


class Transaction(_Collections):
    """Collections bound to a single connection; committed or rolled back as one."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def _connection_factory(self) -> Callable[[], Any]:
        return lambda: nullcontext(self._conn)


class Database(_Collections):
    """SQLite database manager for outlines and manuscript blocks."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"sqlite error: {e}", operation="commit") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _connection_factory(self) -> Callable[[], Any]:
        return self._connect

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self._connect() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run several operations atomically: all commit or none do."""
        with self._connect() as conn:
            yield Transaction(conn)

    def backup_database(self, target_path: str | Path) -> Path:
        """Create a backup copy of the database.

        Args:
            target_path: Path for the backup file.

        Returns:
            Path to the backup file.
        """
        target = Path(target_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(self.db_path), str(target))
        logger.info("Database backed up to %s", target)
        return target
