import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from splitledger.config import get_settings
from splitledger.errors import ContentionError

logger = logging.getLogger(__name__)

# lock_not_available, serialization_failure, deadlock_detected
CONTENTION_SQLSTATES = {"55P03", "40001", "40P01"}

# Execution option marking a connection that will write to the ledger
WRITE_LOCK_OPTION = "ledger_write"


def build_engine(database_url: str, lock_timeout_ms: int = 5000) -> Engine:
    """Create an engine with the locking behaviour the debt ledger relies on"""
    if database_url.startswith("postgresql"):
        return create_engine(database_url, pool_pre_ping=True)

    # SQLite configuration
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": lock_timeout_ms / 1000},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so it can choose the locking mode
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        # Reads stay deferred; ledger writes take the write lock up front
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


settings = get_settings()

engine = build_engine(settings.database_url, settings.lock_timeout_ms)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_connection(bind: Engine = engine) -> bool:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        return False


def is_contention_error(exc: Exception) -> bool:
    """Tell lock waits and serialization conflicts apart from genuine failures"""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in CONTENTION_SQLSTATES:
        return True
    message = str(orig or exc).lower()
    if isinstance(exc, OperationalError):
        return "database is locked" in message or "database table is locked" in message
    if isinstance(exc, IntegrityError):
        # Two transactions inserting the same fresh debt pair
        return "uq_debts_group_debtor_creditor" in message or (
            "unique constraint failed" in message and "debts." in message
        )
    return False


def _apply_lock_timeout(db: Session, lock_timeout_ms: int) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))


def _begin_write(db: Session) -> None:
    # A read transaction left open by the request would hold the connection
    # in deferred mode; end it so the ledger work starts with the write lock
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={WRITE_LOCK_OPTION: True})


@contextmanager
def ledger_transaction(db: Session, lock_timeout_ms: int = None) -> Iterator[Session]:
    """
    Run a block of ledger work atomically.

    Any read transaction already open on the session is ended first, then a
    write transaction is started (BEGIN IMMEDIATE on SQLite). Commits when the
    block finishes, rolls back on any exception. Lock timeouts, serialization
    failures and deadlocks are re-raised as ContentionError so the caller can
    retry.
    """
    if lock_timeout_ms is None:
        lock_timeout_ms = get_settings().lock_timeout_ms
    try:
        _begin_write(db)
        _apply_lock_timeout(db, lock_timeout_ms)
        yield db
        db.commit()
    except (OperationalError, IntegrityError) as e:
        db.rollback()
        if is_contention_error(e):
            logger.warning(f"Ledger transaction aborted on contention: {e.orig}")
            raise ContentionError("The ledger is busy, please retry") from e
        raise
    except Exception:
        db.rollback()
        raise
