"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine (SQLite по умолчанию, любой DSN SQLAlchemy)
- Контекстный менеджер для сессий
- Единая точка доступа к БД для всех сервисов
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from voice_task_agent.common.config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # каскадное удаление scheduled_actions требует включённых FK
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(dsn: str) -> Engine:
    """
    Создаёт engine. Для SQLite включает FK; in-memory база живёт в одном соединении.
    """
    if dsn.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in dsn or dsn.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        eng = create_engine(dsn, **kwargs)
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
        return eng

    return create_engine(dsn, pool_pre_ping=True)


def build_session_factory(eng: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=eng, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(eng: Engine) -> None:
    """
    Создаёт таблицы без Alembic (dev/тесты). В проде используется миграция 0001_init.
    """
    from voice_task_agent.storage.models import Base

    Base.metadata.create_all(eng)


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_settings = get_settings()

engine = build_engine(_settings.database_dsn)

SessionLocal = build_session_factory(engine)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
