import os

# Must be set before config/cache are imported
os.environ.setdefault("USE_MOCK_DRIVE", "true")
os.environ.setdefault("REDIS_CACHE_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models
from config import config
from database import Base
from services.remote_store_mock import MockRemoteStore


@pytest.fixture
def db_session(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test_sync.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def mock_db_file(tmp_path, monkeypatch):
    path = str(tmp_path / "mock_drive_db.json")
    monkeypatch.setattr(config, "USE_MOCK_DRIVE", True)
    monkeypatch.setattr(config, "MOCK_DRIVE_DB_FILE", path)
    monkeypatch.setattr(config, "BULK_OPERATION_DELAY_MS", 0)
    return path


@pytest.fixture
def mock_store(mock_db_file):
    return MockRemoteStore(db_file=mock_db_file)


@pytest.fixture
def projects_root(mock_store):
    """The legacy root folder /G2_Progetti, created in the mock store."""
    return mock_store.create_folder("/", "G2_Progetti")


@pytest.fixture
def make_project(db_session):
    def _make(code, template="LUNGO", description=None):
        project = models.Project(code=code, template=template, object=description)
        db_session.add(project)
        db_session.commit()
        db_session.refresh(project)
        return project
    return _make
