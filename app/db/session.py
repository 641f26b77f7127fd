from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from app.core.config import SQLALCHEMY_DATABASE_URI

# Determine if we are using SQLite
is_sqlite = SQLALCHEMY_DATABASE_URI.startswith("sqlite")

connect_args = {}
if is_sqlite:
    connect_args = {"check_same_thread": False}

engine = create_engine(SQLALCHEMY_DATABASE_URI, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block of work as one unit on the given session.
    Commits when the block exits cleanly, rolls back every pending write otherwise.
    Helpers called inside the block must only flush, never commit.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
