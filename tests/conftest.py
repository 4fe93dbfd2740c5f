"""
Shared fixtures: a fresh in-memory SQLite database per test.

base.SessionLocal is pointed at the test engine, so background entry points
(run_stats_recompute, ingest_workbook) and the API's get_db dependency all
see the same data as the test session.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import scriptboard.models  # noqa: F401  (registers every model on Base)
from scriptboard.models import base
from scriptboard.models.script import Script
from scriptboard.models.spend import ExcelUpload, SpendRow


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    base.enable_sqlite_foreign_keys(engine)
    base.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(base, "SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_script(db):
    def _make(name, parent=None, **fields):
        script = Script(name=name, parent_id=parent.id if parent else None, **fields)
        db.add(script)
        db.commit()
        return script
    return _make


@pytest.fixture
def make_upload(db):
    """Create a period with spend rows given as dicts of SpendRow fields."""
    def _make(period, rows=(), filename=None):
        upload = ExcelUpload(filename=filename or f"{period}.xlsx", period=period, status="done")
        db.add(upload)
        db.flush()
        for i, fields in enumerate(rows, start=1):
            db.add(SpendRow(upload_id=upload.id, row_index=i, **fields))
        upload.row_count = len(rows)
        db.commit()
        return upload
    return _make
