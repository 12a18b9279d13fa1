"""Shared fixtures: an isolated in-memory SQLite database per test."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from encounter_export.database import Base, init_db
from encounter_export.models import EncounterRow
from encounter_export.schemas import SourceRecord


@pytest.fixture
def db():
    """Database session bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def add_encounters(db):
    """Insert encounter rows given as raw record dicts."""
    def _add(*rows):
        for row in rows:
            record = SourceRecord.model_validate(row)
            db.add(EncounterRow(**record.model_dump()))
        db.commit()
    return _add
