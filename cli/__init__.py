"""CLI package: click commands and rich output helpers."""
