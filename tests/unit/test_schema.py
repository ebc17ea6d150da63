"""Tests for database schema."""

import sqlite3

from notenest.core.database.schema import (
    create_schema,
    get_metadata,
    get_schema_version,
    migrate_schema,
    set_metadata,
)


def test_create_schema_creates_kv_table() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    tables = {
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    assert {"kv", "metadata"} <= tables


def test_migrate_schema_on_empty_db_creates_schema_and_sets_version() -> None:
    conn = sqlite3.connect(":memory:")
    assert get_schema_version(conn) is None
    migrate_schema(conn)
    assert get_schema_version(conn) == 1


def test_migrate_schema_is_idempotent() -> None:
    conn = sqlite3.connect(":memory:")
    migrate_schema(conn)
    set_metadata(conn, "last_write_at", "42")
    migrate_schema(conn)
    assert get_metadata(conn, "last_write_at") == "42"


def test_get_metadata_missing_key() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    assert get_metadata(conn, "nope") is None
