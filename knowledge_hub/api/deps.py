"""FastAPI dependencies and error mapping shared by the routers."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from knowledge_hub.core.dependencies import ServiceContainer
from knowledge_hub.core.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


def get_services(request: Request) -> ServiceContainer:
    """Service container attached to the application."""
    return request.app.state.services


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Requester identity from the X-User-Id header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header is required")
    return x_user_id.strip()


Services = Annotated[ServiceContainer, Depends(get_services)]
UserId = Annotated[str, Depends(get_user_id)]


def http_error(e: Exception, action: str) -> HTTPException:
    """
    Translate a service exception into an HTTP error.

    Args:
        e: Exception raised by a service.
        action: What the route was doing, for logs and 500 details.

    Returns:
        HTTPException to raise.
    """
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, VersionConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ProviderError):
        logger.error(f"{action} failed at the provider: {str(e)}")
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    if isinstance(e, DatabaseError):
        logger.error(f"{action} failed in the database: {str(e)}")
        return HTTPException(status_code=500, detail=f"{action} failed")
    logger.error(f"{action} failed: {str(e)}")
    return HTTPException(status_code=500, detail=f"{action} failed: {str(e)}")
