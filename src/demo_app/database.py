import os
import pathlib

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data/demo.db")

# Ensure the data directory exists when using the default SQLite path.
if DATABASE_URL.startswith("sqlite:///"):
    _db_path = pathlib.Path(DATABASE_URL[len("sqlite:///"):])
    _db_path.parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    DATABASE_URL,
    # Required for SQLite: sync DB work runs in the threadpool, so the
    # connection may be used from a different thread than the one that opened it.
    connect_args={"check_same_thread": False},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base class shared by all ORM models."""
