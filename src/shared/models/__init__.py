"""
Общие DTO и Pydantic-модели сервиса поездок.
"""

from src.shared.models.enums import (
    RideStatus,
    BidStatus,
    UserRole,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
)
from src.shared.models.ride import (
    Point,
    RideDTO,
    BidDTO,
)
from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
)

__all__ = [
    # Enums
    "RideStatus",
    "BidStatus",
    "UserRole",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    # Ride
    "Point",
    "RideDTO",
    "BidDTO",
    # Common
    "ErrorResponse",
    "HealthStatus",
]
