"""
AgriSupply Database Configuration
SQLAlchemy setup for the relational store
"""
from sqlalchemy import create_engine, event, MetaData, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from typing import Dict, Generator, Iterable, Optional
import logging

from .config import settings

logger = logging.getLogger("agrisupply.database")


def _engine_options(url: str) -> dict:
    """Pool options per backend; SQLite has no server to pool connections against"""
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "poolclass": QueuePool,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)

if settings.DATABASE_URL.startswith("sqlite"):
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let SQLAlchemy emit it.
    # Foreign keys are off per connection unless switched on.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Constraint names stay stable across SQLite and PostgreSQL
Base = declarative_base(metadata=MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}))


def get_db() -> Generator:
    """
    Request-scoped session; rolled back on any error raised by the endpoint

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Create every table registered on Base that does not exist yet
    """
    try:
        # registers the tables on Base.metadata
        from agrisupply import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info(f"Schema checked, {len(Base.metadata.tables)} tables")

    except Exception as e:
        logger.error(f"Schema creation failed: {e}")
        raise


def check_db_connection() -> bool:
    """
    Round-trip a trivial query on a pooled connection

    Returns:
        False when the database cannot be reached
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


def upsert(
    db: Session,
    model,
    values: Dict,
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
) -> Optional[int]:
    """
    Insert a row or update it in place when the conflict columns already match.

    Runs as a single INSERT .. ON CONFLICT statement so two sessions racing on
    the same key cannot both insert. An empty update_columns leaves an
    existing row untouched (ON CONFLICT DO NOTHING).

    Returns:
        Primary key of the inserted or updated row; None when nothing was written
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    # Pending ORM changes must reach the database before expire_all below
    db.flush()

    conflict_columns = list(conflict_columns)
    table = model.__table__
    stmt = insert(table).values(**values)
    columns = update_columns if update_columns is not None else values.keys()
    set_ = {name: stmt.excluded[name] for name in columns if name not in conflict_columns}
    if set_:
        stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=set_)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)

    row_id = db.execute(stmt.returning(table.c.id)).scalar()
    # ORM instances loaded earlier in this session are now stale
    db.expire_all()
    return row_id
