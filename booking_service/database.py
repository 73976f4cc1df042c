from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings


def make_engine(url: str):
    """
    Builds an engine for the booking store.

    SQLite connections open their implicit transactions with BEGIN IMMEDIATE,
    so the first write of a unit of work takes the database write lock and
    concurrent writers queue on the busy timeout instead of deadlocking.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "isolation_level": "IMMEDIATE"}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

Base = declarative_base()
