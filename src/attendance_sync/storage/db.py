"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- создание engine по DSN (по умолчанию SQLite-файл на устройстве)
- контекстный менеджер для сессий
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from .models import Base


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
def build_engine(dsn: str) -> Engine:
    """
    Engine + создание таблиц. Для SQLite-файла создаётся каталог.
    """
    url = make_url(dsn)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(dsn, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Использование:
        with db_session(factory) as session:
            session.add(...)
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
