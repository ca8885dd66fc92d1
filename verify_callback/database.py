"""
SQLAlchemy engine for the verification_events table written by POST /webhook.
The table only backs the legacy recent-verification lookup, so SQLite is enough
unless VERIFY_DATABASE_URL points elsewhere.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from verify_callback.config import DATABASE_URL
from verify_callback.models import Base


def _make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    # Webhook handling runs in the threadpool, not the thread that opened the connection
    connect_args = {"check_same_thread": False}
    if ":memory:" in url:
        # One shared connection, otherwise each session sees its own empty database
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create verification_events if missing. Called from the app lifespan."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency for GET /verification/recent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
