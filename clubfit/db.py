import os
import sqlite3
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

load_dotenv()

# SQLite file in the working directory unless told otherwise
DATABASE_URL = os.getenv("CLUBFIT_DATABASE_URL", "sqlite:///clubfit.db")

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=connect_args
)

@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this pragma is on for every connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

#Defining Base class for models to inherit
class Base(DeclarativeBase):
    """Base Class for ORM models"""
    pass

#Builds a factory which creates new DB sessions on Demand
SessionLocal = sessionmaker(bind=engine, autoflush= False, expire_on_commit= False)

def init_db() -> None:
    """Create all tables based on Base metadata"""
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
