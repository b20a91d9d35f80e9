from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from app.core.config import settings
import logging
import os
import time

logger = logging.getLogger(__name__)

logger.info("BOOKWORM DATABASE_URL = %s", settings.get_masked_database_url())

engine_kwargs = {"pool_pre_ping": True, "echo": False}
if settings.is_sqlite:
    # SQLite connections are shared with the threadpool FastAPI runs sync dependencies in
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)


def enable_sqlite_savepoints(sqlite_engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself on pysqlite connections.

    pysqlite defers BEGIN until the first DML statement, which breaks
    Session.begin_nested() (SAVEPOINT). The rating recompute relies on it.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


if settings.is_sqlite:
    enable_sqlite_savepoints(engine)

# Slow query logging (DEBUG mode only)
if settings.DEBUG:
    SLOW_QUERY_THRESHOLD_MS = 200.0

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if hasattr(context, "_query_start_time"):
            elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
            if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
                statement_first_line = statement.split("\n")[0].strip()[:100]
                logger.warning("SLOW_QUERY: %.2fms - %s", elapsed_ms, statement_first_line)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Dev convenience: create all tables when the schema isn't managed by Alembic.

    create_all() only creates missing tables, it never alters existing ones.
    When alembic/versions contains migrations, those are the source of truth
    and this function does nothing.
    """
    alembic_versions_path = os.path.join(os.path.dirname(__file__), "..", "alembic", "versions")
    if os.path.exists(alembic_versions_path) and any(
        name.endswith(".py") for name in os.listdir(alembic_versions_path)
    ):
        logger.info("Alembic migrations detected, skipping create_all(). Run 'alembic upgrade head'.")
        return

    # Import models so they're registered with Base.metadata
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
