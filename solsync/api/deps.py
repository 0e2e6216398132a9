"""API dependencies"""

from typing import Generator

from sqlalchemy.orm import Session

from solsync.core.db import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Database dependency"""
    with SessionLocal() as db:
        yield db
