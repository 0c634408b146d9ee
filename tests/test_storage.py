import sqlite3

import pytest

from urlshortener.config import DatabaseConfig, RedisConfig, SQLiteConfig
from urlshortener.storage import Database, StorageError, open_database, run_migrations


def _cfg(path=":memory:"):
    return DatabaseConfig(sqlite=SQLiteConfig(path=path), redis=RedisConfig())


def test_database_connections(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    db = open_database(_cfg())
    try:
        assert db.sqlite.execute("SELECT 1").fetchone()[0] == 1
        assert db.redis is None
    finally:
        db.close()


def test_unreachable_redis_is_skipped(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "127.0.0.1:1")
    with open_database(_cfg()) as db:
        assert db.redis is None


def test_migrations_create_tables_and_are_idempotent():
    with open_database(_cfg()) as db:
        run_migrations(db.sqlite)
        run_migrations(db.sqlite)
        names = {r[0] for r in db.sqlite.execute("SELECT name FROM sqlite_master")}
        assert {"urls", "clicks", "idx_urls_short_id", "idx_clicks_url_id"} <= names


def test_short_id_unique():
    with open_database(_cfg()) as db:
        run_migrations(db.sqlite)
        db.sqlite.execute("INSERT INTO urls (long_url, short_id) VALUES ('a', 'x')")
        with pytest.raises(sqlite3.IntegrityError):
            db.sqlite.execute("INSERT INTO urls (long_url, short_id) VALUES ('b', 'x')")


def test_file_database_persists(tmp_path, monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    path = str(tmp_path / "u.db")
    with open_database(_cfg(path)) as db:
        run_migrations(db.sqlite)
        with db.sqlite:
            db.sqlite.execute("INSERT INTO urls (long_url, short_id) VALUES ('a', 'k')")
    with open_database(_cfg(path)) as db:
        assert db.sqlite.execute("SELECT long_url FROM urls").fetchone()["long_url"] == "a"


def test_bad_path_raises(tmp_path):
    with pytest.raises(StorageError):
        open_database(_cfg(str(tmp_path / "missing" / "dir" / "x.db")))


def test_migration_on_closed_connection_raises():
    conn = sqlite3.connect(":memory:")
    db = Database(sqlite=conn)
    db.close()
    with pytest.raises(StorageError):
        run_migrations(conn)