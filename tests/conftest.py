import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AIRTABLE_API_KEY", "test-key")
os.environ.setdefault("AIRTABLE_BASE_ID", "appTEST")
os.environ.setdefault("AIRTABLE_TABLE_NAME", "Customers")

import pytest

from schemas import CompetencyState


@pytest.fixture
def fresh_state():
    return CompetencyState()


@pytest.fixture
def db_session():
    from database import SessionLocal, engine
    from models import Base

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
