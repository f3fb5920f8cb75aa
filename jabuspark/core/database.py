from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
import logging

from jabuspark.core.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            future=True,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        use_immediate_transactions(engine)
        return engine
    return create_engine(
        url,
        future=True,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        pool_pre_ping=True,
    )


def use_immediate_transactions(engine: Engine) -> None:
    """Make pysqlite open every transaction with BEGIN IMMEDIATE.

    SQLite has no row locks; taking the write lock up front serializes writers the
    way SELECT ... FOR UPDATE does on MySQL and PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    """Create tables if they don't exist."""
    # Importing the models registers them on Base.metadata
    from jabuspark.models import orm  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Database tables ensured")


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def insert_ignore(db: Session, model, **values) -> None:
    """Insert a row unless its primary/unique key already exists."""
    dialect = db.get_bind().dialect.name
    table = model.__table__
    if dialect == "mysql":
        stmt = mysql.insert(table).values(**values).prefix_with("IGNORE")
    elif dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert_ignore is not supported on {dialect}")
    db.execute(stmt)
