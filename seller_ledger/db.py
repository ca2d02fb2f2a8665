from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from seller_ledger.config import settings


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = settings.database_url_normalized
    connect_args = {}
    if url.startswith('sqlite'):
        connect_args = {'check_same_thread': False}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True, echo=settings.database_echo)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    return make_session_factory(get_engine())


def SessionLocal() -> Session:
    return get_session_factory()()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Unit of work around one ledger operation.

    Commits when the block exits cleanly; any exception rolls back every
    write made through ``db`` since the last commit and is re-raised.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
