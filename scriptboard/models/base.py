"""
Base database model and session management
"""
import logging
import os
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import declarative_base, sessionmaker
from scriptboard.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Resolve relative SQLite paths to absolute so cwd changes can't break it
_db_url = settings.database_url
if _db_url.startswith("sqlite:///") and not _db_url.startswith("sqlite:////"):
    rel_path = _db_url[len("sqlite:///"):]
    _db_url = "sqlite:///" + os.path.abspath(rel_path)


def enable_sqlite_foreign_keys(engine):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create database engine
if _db_url.startswith("sqlite"):
    # SQLite works best with a single connection in this app's workload.
    engine = create_engine(
        _db_url,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,
        pool_pre_ping=True
    )
    enable_sqlite_foreign_keys(engine)
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=3,
        max_overflow=5,
        pool_recycle=300,
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.expire_all()
        db.close()


def _migrate_missing_columns(bind=None):
    """Add model columns that an existing table lacks.

    create_all() never alters a table that is already there, so a column
    added to a model after the first deploy would otherwise be missing.
    Returns the list of "table.column" names that were added.
    """
    bind = bind if bind is not None else engine
    inspector = inspect(bind)
    added = []
    with bind.connect() as conn:
        for table_name, table in Base.metadata.tables.items():
            if not inspector.has_table(table_name):
                continue
            present = {c["name"] for c in inspector.get_columns(table_name)}
            for col in table.columns:
                if col.name in present:
                    continue
                col_type = col.type.compile(dialect=bind.dialect)
                sql = f"ALTER TABLE {table_name} ADD COLUMN {col.name} {col_type}"
                logger.info(f"Auto-migrating: {sql}")
                conn.execute(text(sql))
                added.append(f"{table_name}.{col.name}")
        conn.commit()
    return added


def init_db(bind=None):
    """Initialize database tables and auto-migrate new columns."""
    import scriptboard.models  # noqa: F401  (registers every model on Base)
    bind = bind if bind is not None else engine
    Base.metadata.create_all(bind=bind)
    return _migrate_missing_columns(bind)
