from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()

DATABASE_URL = settings.database_url  # fail fast if missing

_engine_kwargs = {"pool_pre_ping": True, "future": True, "echo": settings.db_echo}
if DATABASE_URL.startswith("sqlite"):
    # local/dev only; sessions may hop threads (feeds, threadpool routes)
    _engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    # long-lived feeds open their own short sessions per poll
    return SessionLocal
