"""
Engine and session management for the contract store.

Responsibility:
    Builds the one process-wide SQLAlchemy engine from a URL, hands out
    sessions, and creates the schema plus its append-only triggers.

Architecture position:
    Kernel > DB.  Imports models only inside ``create_tables`` so that
    their tables are registered on the metadata.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  The signing path takes
      ``SELECT ... FOR UPDATE`` on the contract row for the stronger
      guarantee it needs.
    - SQLite connections hand transaction control to SQLAlchemy and every
      transaction opens with ``BEGIN IMMEDIATE``: writers queue on the file
      lock (up to the busy timeout) instead of failing on a lock upgrade.
      Foreign keys are enabled per connection.
    - ORM immutability listeners are registered whenever an engine is built.

Failure modes:
    - RuntimeError from the accessors when no engine has been initialized.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from contract_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _on_sqlite_connect(dbapi_connection, _record) -> None:
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _on_sqlite_begin(connection) -> None:
    connection.exec_driver_sql("BEGIN IMMEDIATE")


def _build_sqlite_engine(url: str, echo: bool) -> Engine:
    options: dict = {
        "echo": echo,
        "connect_args": {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        },
    }
    if make_url(url).database in (None, "", ":memory:"):
        # An in-memory database exists per connection; share one.
        options["poolclass"] = StaticPool
    engine = create_engine(url, **options)
    event.listen(engine, "connect", _on_sqlite_connect)
    event.listen(engine, "begin", _on_sqlite_begin)
    return engine


def _build_server_engine(url: str, echo: bool, pool_size: int, max_overflow: int) -> Engine:
    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> Engine:
    """
    Build the engine for ``database_url`` and make it current.

    A previous engine is disposed.  ``pool_size`` and ``max_overflow`` only
    apply to server databases.
    """
    global _engine, _session_factory

    reset_engine()

    if make_url(database_url).get_backend_name() == "sqlite":
        engine = _build_sqlite_engine(database_url, echo)
    else:
        engine = _build_server_engine(database_url, echo, pool_size, max_overflow)

    from contract_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory, for callers that need one session per thread or request."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session that commits on clean exit and rolls back on error; always closed."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(install_triggers: bool = True) -> None:
    """Create every model table and, unless disabled, the append-only triggers."""
    from contract_kernel.db.base import Base
    from contract_kernel.db.triggers import install_immutability_triggers
    from contract_kernel.models import import_all_models

    engine = get_engine()
    import_all_models()
    Base.metadata.create_all(engine)
    if install_triggers:
        install_immutability_triggers(engine)
    logger.info(
        "tables_created",
        extra={"tables": sorted(Base.metadata.tables), "triggers": install_triggers},
    )


def drop_tables() -> None:
    """Remove the append-only triggers, then every model table.  Teardown only."""
    from contract_kernel.db.base import Base
    from contract_kernel.db.triggers import uninstall_immutability_triggers
    from contract_kernel.models import import_all_models

    engine = get_engine()
    import_all_models()
    uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)
    logger.warning("tables_dropped", extra={"tables": sorted(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the current engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
