# ================================
# DATABASE CONNECTION (core/database.py)
# ================================

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from app.config import settings

def build_engine(database_url: str, sqlite_begin: str = "BEGIN", **kwargs) -> Engine:
    """Creates an engine with pool settings matching the backend"""
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(database_url, echo=settings.DATABASE_ECHO, **kwargs)

        @event.listens_for(engine, "connect")
        def _configure_sqlite_connection(dbapi_connection, connection_record):
            # pysqlite's own BEGIN handling breaks SAVEPOINT, SQLAlchemy emits BEGIN instead
            dbapi_connection.isolation_level = None
            # SQLite ignores foreign keys unless asked per connection
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_sqlite_transaction(conn):
            # A single shared connection (StaticPool) may already be inside a transaction
            if not conn.connection.dbapi_connection.in_transaction:
                conn.exec_driver_sql(sqlite_begin)

        return engine

    return create_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before use
        echo=settings.DATABASE_ECHO,
        **kwargs
    )

# Database Engine
engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

