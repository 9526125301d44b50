import os

# settings are read once; point them at throwaway values before app imports
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("MAINTENANCE_TOKEN", "test-maintenance-token")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import app.models  # noqa

from app.core.config import get_settings
from app.core.types import UserRole
from app.db.base import Base
from app.tests.factories import register

settings = get_settings()

if settings.database_url.startswith("sqlite"):
    # one shared in-memory database for every session/thread in a test
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def session_factory(db):
    return SessionLocal


@pytest.fixture
def market(db):
    """
    One farmer and two merchants with 500.00 each.
    """
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=Decimal("500.00"))
    register(db, "merchant-2", UserRole.merchant, deposit=Decimal("500.00"))
    return {"seller": "farmer-1", "bidder1": "merchant-1", "bidder2": "merchant-2"}
