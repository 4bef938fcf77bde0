"""Schema validation tests to prevent SQL query mismatches."""

import inspect
import re
import sqlite3
from pathlib import Path

import pytest

from catalog.database import Database
from catalog.repositories import chunk_repository, version_repository


@pytest.fixture
def test_db(tmp_path):
    """
    Create a temporary test database with schema.
    """
    db_path = tmp_path / "meta.db"
    Database(db_path).init_database()
    return db_path


def get_table_columns(db_path: Path, table_name: str) -> set:
    """
    Get all column names for a table from the database schema.
    """
    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()
    cursor.execute(f"PRAGMA table_info({table_name})")
    columns = {row[1] for row in cursor.fetchall()}
    conn.close()
    return columns


def extract_columns(columns_str: str) -> set:
    """
    Extract plain column names from a SELECT column list.

    Lists with expressions or interpolated columns are skipped.
    """
    if "(" in columns_str or "{" in columns_str or "*" in columns_str:
        return set()

    columns = [col.strip().split()[-1] for col in columns_str.split(",")]
    return {col.lower() for col in columns if col and not col.isdigit()}


def assert_queries_match_schema(module, table: str, db_path: Path) -> None:
    source = inspect.getsource(module)
    select_queries = re.findall(
        r"SELECT\s+(.*?)\s+FROM\s+(\w+)", source, re.IGNORECASE | re.DOTALL
    )
    table_columns = get_table_columns(db_path, table)

    for columns_str, from_table in select_queries:
        if from_table != table:
            continue
        for col in extract_columns(columns_str):
            assert col in table_columns, f"Column {col} not in {table} table schema"


class TestTables:
    """Validate the metadata store schema."""

    @pytest.mark.parametrize("table", ["chunks", "files", "versions", "version_chunks"])
    def test_table_exists(self, test_db, table):
        conn = sqlite3.connect(test_db)
        cursor = conn.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
        result = cursor.fetchone()
        conn.close()
        assert result is not None

    def test_chunks_table_columns(self, test_db):
        assert get_table_columns(test_db, "chunks") == {
            "fingerprint",
            "length",
            "reference_count",
            "created_at",
        }

    def test_files_table_columns(self, test_db):
        assert get_table_columns(test_db, "files") == {
            "file_name",
            "latest_version",
            "created_at",
            "updated_at",
        }

    def test_versions_table_columns(self, test_db):
        assert get_table_columns(test_db, "versions") == {
            "file_name",
            "version_number",
            "whole_file_fingerprint",
            "total_size",
            "chunk_count",
            "created_at",
        }

    def test_version_chunks_table_columns(self, test_db):
        assert get_table_columns(test_db, "version_chunks") == {
            "file_name",
            "version_number",
            "position",
            "fingerprint",
        }

    def test_init_is_idempotent(self, test_db):
        Database(test_db).init_database()
        assert get_table_columns(test_db, "chunks")

    def test_negative_reference_count_rejected(self, test_db):
        database = Database(test_db)
        with pytest.raises(sqlite3.IntegrityError):
            with database.transaction() as conn:
                conn.execute(
                    "INSERT INTO chunks (fingerprint, length, reference_count, created_at) "
                    "VALUES ('aa', 1, -1, '2024-01-01T00:00:00')"
                )


class TestRepositoryQueries:
    """Validate repository SQL queries against schema."""

    @pytest.mark.parametrize("table", ["chunks"])
    def test_chunk_repository_select_queries(self, test_db, table):
        assert_queries_match_schema(chunk_repository, table, test_db)

    @pytest.mark.parametrize("table", ["files", "versions", "version_chunks"])
    def test_version_repository_select_queries(self, test_db, table):
        assert_queries_match_schema(version_repository, table, test_db)


class TestConnections:
    """Test connection settings."""

    def test_foreign_keys_enforced(self, test_db):
        with Database(test_db).connect() as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
