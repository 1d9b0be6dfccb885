import time
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.posledger.core.config import settings
from app.posledger.core.db_timing import record_query_time, timing_active
from app.posledger.core.error_catalog import LockTimeoutError
from app.posledger.core.metrics import metrics

WRITE_LOCK_OPTION = "sqlite_write_lock"

_LOCK_TIMEOUT_TOKENS = (
    "lock timeout",
    "canceling statement due to lock timeout",
    "deadlock detected",
    "database is locked",
    "could not obtain lock",
)

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

connect_args = {}
if _is_sqlite:
    connect_args = {"check_same_thread": False, "timeout": settings.LOCK_TIMEOUT_MS / 1000}

engine = create_engine(settings.DATABASE_URL, echo=False, future=True, connect_args=connect_args)


if _is_sqlite:

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # pysqlite's own BEGIN handling is disabled so that the "begin" hook decides the lock mode.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

else:

    @event.listens_for(engine, "begin")
    def _set_lock_timeout(conn):
        if engine.dialect.name == "postgresql":
            conn.exec_driver_sql(f"SET LOCAL lock_timeout = {int(settings.LOCK_TIMEOUT_MS)}")


@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if not timing_active():
        return
    conn.info["query_start_time"] = time.perf_counter()


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if not timing_active():
        return
    start = conn.info.pop("query_start_time", None)
    if start is None:
        return
    record_query_time((time.perf_counter() - start) * 1000)


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_lock_timeout(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(token in message for token in _LOCK_TIMEOUT_TOKENS)
    return False


@contextmanager
def atomic(db: Session):
    """Run one ledger workflow as a single write transaction.

    Commits on success and rolls back on any error. On SQLite the transaction
    opens with BEGIN IMMEDIATE so concurrent writers queue on the database lock;
    a lock wait that exceeds LOCK_TIMEOUT_MS is raised as LockTimeoutError.
    """
    if db.in_transaction():
        db.commit()
    try:
        db.connection(execution_options={WRITE_LOCK_OPTION: True})
        yield db
        db.commit()
    except OperationalError as exc:
        db.rollback()
        if is_lock_timeout(exc):
            metrics.increment_lock_wait_timeout()
            raise LockTimeoutError(
                details={"retryable": True, "lock_timeout_ms": settings.LOCK_TIMEOUT_MS}
            ) from exc
        raise
    except Exception:
        db.rollback()
        raise
