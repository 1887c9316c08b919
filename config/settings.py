"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file."""

    # Database
    sqlite_db_path: Path = Path("./data/inkwell.db")

    # History
    history_max_depth: int = 20
    history_coalesce_ms: int = 3000  # Same-block edits closer than this share one undo entry

    # Manuscript conventions
    dialogue_open: str = "「"
    dialogue_close: str = "」"
    indent_char: str = "　"  # Full-width space
    duplicate_title_suffix: str = " (コピー)"

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("history_max_depth")
    @classmethod
    def validate_history_max_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_max_depth must be >= 1")
        return v

    @field_validator("history_coalesce_ms")
    @classmethod
    def validate_coalesce_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("history_coalesce_ms must be non-negative")
        return v

    @field_validator("dialogue_open", "dialogue_close")
    @classmethod
    def validate_dialogue_marker(cls, v: str) -> str:
        if not v:
            raise ValueError("Dialogue marker must not be empty")
        return v

    @field_validator("indent_char")
    @classmethod
    def validate_indent_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("indent_char must be exactly one character")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
