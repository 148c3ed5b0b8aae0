"""
Tests for the schema templates.
"""

import pytest

from fulfillment.migrations import (
    LEDGER_SCHEMA,
    get_schema,
    get_template_path,
    list_schemas,
    split_statements,
)

TABLES = ("ledger_records", "ledger_partitions", "ledger_unique_keys")


@pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
def test_schema_defines_every_table(backend: str) -> None:
    sql = get_schema(LEDGER_SCHEMA, backend=backend)  # type: ignore[arg-type]
    for table in TABLES:
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql


def test_postgresql_uses_native_types() -> None:
    sql = get_schema("ledger")
    assert "JSONB" in sql
    assert "TIMESTAMPTZ" in sql


@pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
def test_list_schemas(backend: str) -> None:
    assert list_schemas(backend=backend) == ["ledger"]  # type: ignore[arg-type]


def test_missing_template() -> None:
    with pytest.raises(FileNotFoundError):
        get_template_path("orders")  # type: ignore[arg-type]


def test_split_statements_drops_comments() -> None:
    sql = "-- header\nCREATE TABLE a (x INT);\n\n-- more\nCREATE INDEX i ON a (x);\n"
    assert split_statements(sql) == ["CREATE TABLE a (x INT)", "CREATE INDEX i ON a (x)"]


@pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
def test_shipped_schema_splits_cleanly(backend: str) -> None:
    statements = split_statements(get_schema("ledger", backend=backend))  # type: ignore[arg-type]
    assert len(statements) >= len(TABLES)
    assert all(not s.startswith("--") for s in statements)
