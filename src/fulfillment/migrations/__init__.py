"""
Database migration support for the fulfillment library.

This module provides SQL schema templates and utilities for setting up
the tables required by the persistent ledger stores.

Tables:
    - ledger_records: Committed records (JSON payload, version, partition)
    - ledger_partitions: Per-partition commit counters
    - ledger_unique_keys: Claimed values of unique fields

Supported backends:
    - postgresql (default): PostgreSQL schema (JSONB, TIMESTAMPTZ)
    - sqlite: SQLite-compatible schema

Usage:
    from fulfillment.migrations import get_schema, split_statements

    # PostgreSQL schema
    ledger_sql = get_schema("ledger")

    # SQLite schema
    ledger_sql = get_schema("ledger", backend="sqlite")

    # asyncpg cannot run several statements in one execute() call
    async with engine.begin() as conn:
        for statement in split_statements(get_schema("ledger")):
            await conn.execute(text(statement))
"""

from pathlib import Path
from typing import Literal

# Schema file names
SchemaName = Literal["ledger"]

# Supported database backends
BackendName = Literal["postgresql", "sqlite"]

# Paths
_PACKAGE_DIR = Path(__file__).parent
_TEMPLATES_DIR = _PACKAGE_DIR / "templates"


def _get_backend_templates_dir(backend: BackendName) -> Path:
    """
    Get the templates directory for a specific backend.

    Args:
        backend: The database backend (postgresql, sqlite)

    Returns:
        Path to the backend-specific templates directory
    """
    if backend == "postgresql":
        return _TEMPLATES_DIR
    return _TEMPLATES_DIR / backend


def get_template_path(name: SchemaName, backend: BackendName = "postgresql") -> Path:
    """
    Get the path to a SQL template file.

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    path = _get_backend_templates_dir(backend) / f"{name}.sql"
    if not path.exists():
        raise FileNotFoundError(f"Schema template not found for backend '{backend}': {path}")
    return path


def get_schema(name: SchemaName = "ledger", backend: BackendName = "postgresql") -> str:
    """
    Load a SQL schema template by name and backend.

    Args:
        name: The schema name (currently only "ledger")
        backend: The database backend. One of:
            - "postgresql": PostgreSQL schema (default)
            - "sqlite": SQLite-compatible schema

    Returns:
        SQL schema definition as a string

    Raises:
        FileNotFoundError: If the schema file doesn't exist

    Example:
        >>> import aiosqlite
        >>> async with aiosqlite.connect(":memory:") as db:
        ...     await db.executescript(get_schema("ledger", backend="sqlite"))
    """
    return get_template_path(name, backend).read_text()


def split_statements(sql: str) -> list[str]:
    """
    Split a schema script into individual statements.

    Comment lines are dropped. The schemas shipped here contain no
    semicolons inside literals, so a plain split is enough.

    Example:
        >>> split_statements("-- tables\\nCREATE TABLE a (x INT);\\nCREATE TABLE b (y INT);")
        ['CREATE TABLE a (x INT)', 'CREATE TABLE b (y INT)']
    """
    lines = [line for line in sql.splitlines() if not line.lstrip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def list_schemas(backend: BackendName = "postgresql") -> list[str]:
    """
    List all available schema templates for a backend.

    Example:
        >>> list_schemas(backend="sqlite")
        ['ledger']
    """
    templates_dir = _get_backend_templates_dir(backend)
    if not templates_dir.exists():
        return []
    return sorted(p.stem for p in templates_dir.glob("*.sql"))


LEDGER_SCHEMA = "ledger"

__all__ = [
    "get_schema",
    "get_template_path",
    "list_schemas",
    "split_statements",
    "LEDGER_SCHEMA",
    "SchemaName",
    "BackendName",
]
