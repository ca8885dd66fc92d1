"""Tests for the verification-events engine setup."""
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from verify_callback.database import SessionLocal, _make_engine, engine, init_db


def test_memory_sqlite_shares_one_connection():
    assert isinstance(engine.pool, StaticPool)
    init_db()
    db = SessionLocal()
    try:
        assert "verification_events" in inspect(db.get_bind()).get_table_names()
    finally:
        db.close()


def test_file_sqlite_uses_pooled_engine(tmp_path):
    file_engine = _make_engine(f"sqlite:///{tmp_path / 'events.db'}")
    try:
        assert not isinstance(file_engine.pool, StaticPool)
        assert file_engine.url.database.endswith("events.db")
    finally:
        file_engine.dispose()
