import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import (
    DATABASE_URL,
    DB_BUSY_TIMEOUT,
    DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    ENABLE_QUERY_LOGGING,
    SLOW_QUERY_THRESHOLD,
)
from .shared.errors import RepositoryError

logger = logging.getLogger(__name__)

Base = declarative_base()


def _install_sqlite_begin_immediate(engine: Engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, which lets two sessions both
    read "no overlap" before either inserts. BEGIN IMMEDIATE serializes the
    whole check-then-insert sequence.
    """

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _install_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:200]}...")


def build_engine(url: str, *, busy_timeout: float = DB_BUSY_TIMEOUT) -> Engine:
    """Create an engine with the pool and locking settings the booking core relies on"""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=False,
        )
        _install_sqlite_begin_immediate(engine)
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=DB_POOL_RECYCLE,
            pool_size=DB_POOL_SIZE,
            max_overflow=DB_MAX_OVERFLOW,
            pool_timeout=DB_POOL_TIMEOUT,
            echo=False,
        )

    if ENABLE_QUERY_LOGGING:
        _install_slow_query_logging(engine)

    return engine


try:
    engine = build_engine(DATABASE_URL)
    logger.info("Database engine created successfully")
except Exception as e:
    logger.error(f"Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _apply_statement_timeout(db: Session, timeout_seconds: Optional[float]) -> None:
    if not timeout_seconds:
        return
    if db.get_bind().dialect.name == "postgresql":
        millis = max(1, int(timeout_seconds * 1000))
        db.execute(text(f"SET LOCAL statement_timeout = {millis}"))
        db.execute(text(f"SET LOCAL lock_timeout = {millis}"))
    # SQLite waits on its lock at BEGIN, bounded by the connection busy timeout


@contextmanager
def bounded_transaction(db: Session, timeout_seconds: Optional[float] = None) -> Iterator[Session]:
    """
    Run a unit of work as one transaction bounded by ``timeout_seconds``.

    Commits on success. Any exception, including cancellation, rolls the whole
    transaction back so no partial appointment is ever left behind. Store
    failures and timeouts are re-raised as a retryable RepositoryError.
    """
    if db.in_transaction():
        # Close out whatever the session auto-began (reads) so our guard starts fresh
        db.commit()
    try:
        _apply_statement_timeout(db, timeout_seconds)
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Store unavailable or timed out: {e}")
        raise RepositoryError(
            "The booking store is temporarily unavailable, please retry", reason="store_unavailable"
        ) from e
    except BaseException:
        db.rollback()
        raise
