import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


DB_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "school.db")
DATABASE_URL = settings.database_url or f"sqlite:///{DB_PATH}"


def _emit_sqlite_begin(engine) -> None:
    # pysqlite only sends BEGIN ahead of DML, so reads would otherwise autocommit
    # one by one. Emitting it ourselves keeps a count and a page on one snapshot.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs):
    # Other backends need an explicit level so a count and a page fetch inside
    # one transaction read the same snapshot.
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, future=True, **kwargs)
        _emit_sqlite_begin(engine)
        return engine
    if settings.db_isolation_level:
        kwargs.setdefault("isolation_level", settings.db_isolation_level)
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, future=True, **kwargs)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
Base = declarative_base()


def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
