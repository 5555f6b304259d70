"""Service-layer exceptions.

Services raise these instead of ``HTTPException`` so they can be called from
the scheduler and scripts; ``chitfund.main`` maps them to HTTP responses.
"""
from fastapi import status


class ServiceError(ValueError):
    """Base class for business-rule failures."""
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(ServiceError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class PreconditionError(ServiceError):
    """Entity is not in the state the operation requires (e.g. loan not pending)."""
    status_code = status.HTTP_409_CONFLICT


class ConflictError(ServiceError):
    """Operation would duplicate or contradict existing data."""
    status_code = status.HTTP_409_CONFLICT
