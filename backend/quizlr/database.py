# SQLAlchemy engine/session setup for the storage adapter.
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from quizlr.config import get_settings


# Create an engine; in-memory SQLite shares one connection across threads.
def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(database_url, future=True, **options)
    return create_engine(database_url, future=True)


DATABASE_URL = get_settings().database_url

engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
