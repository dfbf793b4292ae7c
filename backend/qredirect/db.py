import os
import time
from contextlib import contextmanager
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker, declarative_base

# Load .env file
load_dotenv()

Base = declarative_base()

# Lazy initialization - avoid crash at import time
_engine = None
_SessionLocal = None
_tables_initialized = False


def get_database_url() -> str:
    DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./dev.db"

    # Standardize Postgres URL if needed (hosted providers often use postgres://)
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)
    return DATABASE_URL


def get_engine():
    """Get or create the SQLAlchemy engine (lazy initialization)."""
    global _engine
    if _engine is not None:
        return _engine

    DATABASE_URL = get_database_url()

    # SQLite needs special config; the timeout lets concurrent writers queue instead of failing
    if DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    else:
        connect_args = {}

    _engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
    return _engine


def get_session_local():
    """Get or create the SessionLocal factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is not None:
        return _SessionLocal

    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=get_engine())
    return _SessionLocal


def reset_engine():
    """Dispose the engine so the next call picks up a new DATABASE_URL."""
    global _engine, _SessionLocal, _tables_initialized
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
    _tables_initialized = False


def ensure_tables():
    """Ensure database tables exist. Safe to call multiple times."""
    global _tables_initialized
    if not _tables_initialized:
        from . import models  # noqa: F401  register table metadata
        Base.metadata.create_all(bind=get_engine())
        _tables_initialized = True


def get_db():
    """Dependency to provide a DB session."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Session for scripts and tests: commit on success, roll back on error."""
    db = get_session_local()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def db_healthcheck():
    """Run ``SELECT 1`` and report ``(ok, response_time_ms, error)``."""
    started = time.perf_counter()
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, round((time.perf_counter() - started) * 1000, 2), None
    except DBAPIError as e:
        return False, round((time.perf_counter() - started) * 1000, 2), str(e.orig or e)
