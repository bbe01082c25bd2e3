"""
Business errors raised by the marketplace services.

Services raise these; endpoints convert them with to_http_exception().
"""
from typing import Dict, Any, Optional

from fastapi import HTTPException, status


class MarketplaceError(Exception):
    """Base class for all business-rule failures."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Missing or out-of-range input."""
    status_code = status.HTTP_400_BAD_REQUEST


class MinimumQuantityNotMetError(ValidationError):
    """Requested quantity is below the warehouse minimum."""


class StatePreconditionError(MarketplaceError):
    """Operation not allowed from the entity's current status."""
    status_code = status.HTTP_409_CONFLICT


class AuthorizationError(MarketplaceError):
    """Caller may not act on this entity."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} not found: {entity_id}"
        super().__init__(message, {"entity": entity, "id": str(entity_id) if entity_id else None})


class InsufficientCapacityError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT


class ExternalServiceError(MarketplaceError):
    """A fallible collaborator (payment gateway) failed or timed out."""
    status_code = status.HTTP_502_BAD_GATEWAY


def to_http_exception(exc: MarketplaceError) -> HTTPException:
    """Map a business error onto the HTTP status the API returns for it."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
