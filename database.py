from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def _is_memory_url(database_url: str) -> bool:
    return database_url in {"sqlite://", "sqlite:///:memory:"} or database_url.endswith(
        ":memory:"
    )


def create_db_engine(database_url: str) -> Engine:
    """Build an engine for ``database_url``.

    Every SQLite connection gets ``foreign_keys`` switched on; the ledger's
    delete protection (ON DELETE RESTRICT) and budget cascade depend on it.
    In-memory databases share one connection so that all sessions see the
    same data.
    """
    connect_args: dict[str, object] = {}
    kwargs: dict[str, object] = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
        if _is_memory_url(database_url):
            kwargs["poolclass"] = StaticPool

    eng = create_engine(database_url, connect_args=connect_args, **kwargs)
    if is_sqlite:
        use_wal = not _is_memory_url(database_url)
        event.listen(
            eng,
            "connect",
            lambda dbapi_conn, _record: _enable_sqlite_pragmas(dbapi_conn, use_wal),
        )
    return eng


def _enable_sqlite_pragmas(dbapi_conn, use_wal: bool) -> None:
    cursor = dbapi_conn.cursor()
    if use_wal:
        cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
