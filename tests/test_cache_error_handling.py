"""Tests for package cache error handling."""

import sqlite3
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from gometa.cache import CachedPackage, PackageCache


@pytest.fixture
def temp_cache_dir():
    """Create a temporary directory for cache testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cache(temp_cache_dir):
    """Create a package cache whose connection can be swapped for a mock."""
    db = PackageCache(temp_cache_dir)
    real_conn = db.conn
    yield db
    real_conn.close()


def _failing_conn(message):
    conn = Mock()
    conn.execute.side_effect = sqlite3.Error(message)
    return conn


def _package():
    return CachedPackage("example.com/units", "units", "/deps/units", 1.0, "{}")


def test_database_open_failure(temp_cache_dir):
    """Test that database open failures are propagated."""
    with patch("sqlite3.connect", side_effect=sqlite3.Error("Permission denied")):
        with pytest.raises(sqlite3.Error, match="Permission denied"):
            PackageCache(temp_cache_dir)


def test_schema_failure_closes_connection(temp_cache_dir):
    """Test that the connection is closed if schema creation fails."""
    conn = Mock()
    conn.execute.side_effect = [None, None, sqlite3.Error("disk I/O error")]

    with patch("sqlite3.connect", return_value=conn):
        with pytest.raises(sqlite3.Error, match="disk I/O error"):
            PackageCache(temp_cache_dir)

    conn.close.assert_called_once()


def test_get_database_error(cache):
    cache.conn = _failing_conn("DB corrupted")

    with pytest.raises(sqlite3.Error, match="DB corrupted"):
        cache.get("example.com/units")


def test_put_database_error_rolls_back(cache):
    conn = _failing_conn("DB locked")
    cache.conn = conn

    with pytest.raises(sqlite3.Error, match="DB locked"):
        cache.put(_package())

    conn.rollback.assert_called_once()


def test_put_inside_transaction_defers_rollback(cache):
    conn = _failing_conn("DB locked")
    cache.conn = conn

    with pytest.raises(sqlite3.Error, match="DB locked"):
        with cache.transaction():
            cache.put(_package())

    # Only the transaction itself rolls back.
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_delete_database_error(cache):
    conn = _failing_conn("DB locked")
    cache.conn = conn

    with pytest.raises(sqlite3.Error, match="DB locked"):
        cache.delete("example.com/units")

    conn.rollback.assert_called_once()


def test_clear_database_error(cache):
    conn = _failing_conn("DB locked")
    cache.conn = conn

    with pytest.raises(sqlite3.Error, match="DB locked"):
        cache.clear()

    conn.rollback.assert_called_once()
