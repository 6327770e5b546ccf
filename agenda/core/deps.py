"""FastAPI dependencies for owner identification and database access."""

from typing import Generator
from uuid import UUID

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from agenda.db.session import SessionLocal

OWNER_HEADER = "X-Owner-Id"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_owner_id(
    x_owner_id: str | None = Header(default=None, alias=OWNER_HEADER),
) -> UUID:
    """
    Owner the request acts for.

    Authentication happens upstream; this only reads the owner id the
    gateway forwards.

    Raises:
        HTTPException 401: header missing or not a UUID
    """
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Owner not identified")
    try:
        return UUID(x_owner_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid owner id")
