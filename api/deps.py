"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator
from fastapi import HTTPException, status, Header, Query
from sqlalchemy.orm import Session

from database import SessionLocal
from services.errors import NotFoundError, ForbiddenError, InvalidStateError


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_user_id(
    x_user_id: str = Header(..., alias="X-User-Id")
) -> int:
    """
    Identity of the caller, as set by the authenticating gateway.
    Patients and practitioners are both identified this way.
    """
    try:
        user_id = int(x_user_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )
    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )
    return user_id


def pagination_params(
    page: int = Query(1),
    limit: int = Query(20)
) -> dict:
    """
    Common pagination parameters
    """
    if page < 1:
        page = 1
    if limit < 1:
        limit = 20
    if limit > 100:
        limit = 100

    return {
        "page": page,
        "limit": limit
    }


def to_http_exception(exc: Exception) -> HTTPException:
    """
    Map a service failure to its HTTP response
    """
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ForbiddenError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, InvalidStateError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=str(exc))


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_reminder_service():
        from services.reminder_service import reminder_service
        return reminder_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service


# Service dependency instances
services = ServiceDependency()
