import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./planpm.db")


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    SQLite connections get foreign key enforcement (cascades rely on it) and
    explicit BEGIN handling so that SAVEPOINT-based store transactions roll
    back correctly under pysqlite.
    """

    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite(url) else {}
    new_engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if is_sqlite(url):
        event.listen(new_engine, "connect", _configure_sqlite_connection)
        event.listen(new_engine, "begin", _begin_sqlite_transaction)
    return new_engine


def _configure_sqlite_connection(dbapi_connection, _record):
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(connection):
    connection.exec_driver_sql("BEGIN")


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
