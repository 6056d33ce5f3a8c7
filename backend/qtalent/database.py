from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from qtalent.core.config import settings
import os
import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)

if os.getenv("PYTEST_RUN") == "1":
    SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
else:
    SQLALCHEMY_DATABASE_URL = settings.SQLALCHEMY_DATABASE_URL

is_sqlite = SQLALCHEMY_DATABASE_URL.startswith("sqlite")


def configure_sqlite_engine(sqlite_engine: Engine) -> Engine:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, which lets two
    connections both hold a read lock and then fail with "database is locked"
    when they race to upgrade it. Emitting BEGIN IMMEDIATE ourselves makes
    concurrent writers wait on busy_timeout instead, so conditional updates
    (gig claims, settlement) serialize the way they do on PostgreSQL.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):  # noqa: ANN001
        # Disable pysqlite's own BEGIN handling; "begin" below takes over.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _sqlite_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


pool_kwargs = {
    # Avoid stale idle connections causing first-hit failures after inactivity
    "pool_pre_ping": True,
}
if is_sqlite:
    connect_args = {"check_same_thread": False, "timeout": 30}
else:
    connect_args = {}
    pool_kwargs.update({
        "pool_size": int(os.getenv("DB_POOL_SIZE") or 6),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW") or 6),
        "pool_recycle": int(os.getenv("DB_POOL_RECYCLE") or 300),
        "pool_timeout": float(os.getenv("DB_POOL_TIMEOUT") or 5.0),
    })

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args=connect_args,
    **pool_kwargs,
)
if is_sqlite:
    configure_sqlite_engine(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ─── Short-lived sessions for background tasks and schedulers ─────────────────
@contextmanager
def get_db_session():
    """Provide a short-lived SessionLocal with guaranteed close.

    Use where FastAPI Depends is unavailable (notification fan-out,
    maintenance sweeps) so connections are promptly returned to the pool.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
