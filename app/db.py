from __future__ import annotations

import logging
import threading
import typing as t

from flask import Flask
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, scoped_session, sessionmaker


logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Engine | None = None
_engine_lock = threading.Lock()
_engine_settings: dict[str, t.Any] = {}

SessionLocal: scoped_session = scoped_session(
    sessionmaker(autocommit=False, autoflush=False)
)


def use_immediate_transactions(engine: Engine) -> None:
    """
    Make SQLite transactions take the write lock up front.

    A deferred transaction that reads before it writes can fail with
    "database is locked" without waiting on the busy timeout; ``BEGIN
    IMMEDIATE`` queues concurrent writers instead.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _record) -> None:  # type: ignore[unused-variable]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn) -> None:  # type: ignore[unused-variable]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    """
    Return the process-wide SQLAlchemy engine, creating it on first use.

    The engine is built from the settings recorded by ``init_db(app)`` and is
    created at most once per process, even when several threads race on the
    first request.
    """
    global _engine

    if _engine is not None:
        return _engine

    with _engine_lock:
        if _engine is None:
            database_uri = _engine_settings.get("url")
            if not database_uri:
                raise RuntimeError(
                    "Database is not configured. Call init_db(app) first."
                )
            engine = create_engine(
                database_uri,
                echo=_engine_settings.get("echo", False),
                pool_pre_ping=True,
            )
            if engine.dialect.name == "sqlite":
                use_immediate_transactions(engine)
            SessionLocal.configure(bind=engine)
            # Publish last: the unlocked fast path must only see a ready engine.
            _engine = engine
    return t.cast(Engine, _engine)


def get_session() -> Session:
    """Return the thread-local session, binding the engine lazily."""

    get_engine()
    return SessionLocal()


def _dispose_engine_locked() -> None:
    global _engine

    SessionLocal.remove()
    if _engine is not None:
        _engine.dispose()
    _engine = None


def reset_engine() -> None:
    """
    Dispose the engine so the next ``get_engine()`` builds a fresh one.

    Normal operation never calls this: the engine lives for the process, and
    ``init_db`` already discards it when the database URL changes.
    """

    with _engine_lock:
        _dispose_engine_locked()


def init_db(app: Flask) -> None:
    """
    Record database settings for the Flask app.

    Reads the database URL from ``app.config["SQLALCHEMY_DATABASE_URI"]``.
    No connection is opened here; see ``get_engine``. The engine is shared by
    the whole process, so configuring an app with a different URL replaces
    the engine built for the previous one.
    """

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        raise RuntimeError(
            "SQLALCHEMY_DATABASE_URI is not configured on the Flask app."
        )

    with _engine_lock:
        if _engine is not None and _engine_settings.get("url") != database_uri:
            logger.info(
                "Database URL changed; discarding existing engine",
                extra={"event": "db_engine_reconfigured"},
            )
            _dispose_engine_locked()
        _engine_settings["url"] = database_uri
        _engine_settings["echo"] = app.config.get("SQLALCHEMY_ECHO", False)

    @app.teardown_appcontext
    def remove_session(_exc: BaseException | None) -> None:  # type: ignore[unused-variable]
        """Remove the scoped session at the end of the request."""

        SessionLocal.remove()
