from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .exceptions import UnavailableError


def make_engine(url: str) -> Engine:
    """
    Create an engine for the slot store.

    SQLite: check_same_thread=False so FastAPI worker threads can share the
    pool, and every transaction opens with BEGIN IMMEDIATE so writers on the
    same file serialize instead of failing on lock upgrade.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _):
        # Hand transaction control to SQLAlchemy (see "begin" below)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = make_engine(settings.resolved_database_url)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables defined in the models (dev/test bootstrap)."""
    from .models.generated import Base

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def transaction(db: Session):
    """
    Run a block as one store transaction.

    Commits on success, rolls back on any error. Store-level failures
    (lock timeouts, concurrent unique-key inserts) become UnavailableError;
    engine errors raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except (OperationalError, IntegrityError) as e:
        db.rollback()
        raise UnavailableError(f"Store transaction failed: {e.orig}") from e
    except Exception:
        db.rollback()
        raise
