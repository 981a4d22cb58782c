"""Database engine and session factory configuration."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from filehub.packages.drive.core.config import get_settings

settings = get_settings()


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets ``check_same_thread`` off and FK enforcement on."""
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    new_engine = create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)
    if is_sqlite:
        # SQLite ignores ON DELETE CASCADE unless foreign keys are enabled per connection.
        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):  # pragma: no cover - driver glue
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.sql_database_url, echo=settings.database_echo)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """把一次读取-校验-写入包在单个事务中：正常结束提交，异常回滚后继续抛出。"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
