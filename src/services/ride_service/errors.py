# src/services/ride_service/errors.py
"""
Типизированные ошибки сервиса поездок.

Каждая ошибка принадлежит одной категории (InvalidInput, NotFound, Forbidden,
Conflict, Storage); по категории транспортный слой выбирает HTTP-статус.
Ничего не повторяется внутри сервиса: политика повторов на стороне клиента.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    STORAGE = "storage"


class RideEngineError(Exception):
    """Базовая ошибка движка поездок."""

    code: str = "ride_engine_error"
    category: ErrorCategory = ErrorCategory.STORAGE

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "message": self.message,
            "details": self.details or None,
        }


# =============================================================================
# КАТЕГОРИИ
# =============================================================================

class InvalidInputError(RideEngineError):
    code = "invalid_input"
    category = ErrorCategory.INVALID_INPUT


class NotFoundError(RideEngineError):
    code = "not_found"
    category = ErrorCategory.NOT_FOUND


class ForbiddenError(RideEngineError):
    code = "forbidden"
    category = ErrorCategory.FORBIDDEN


class ConflictError(RideEngineError):
    code = "conflict"
    category = ErrorCategory.CONFLICT


class StorageError(RideEngineError):
    code = "storage_error"
    category = ErrorCategory.STORAGE


# =============================================================================
# КОНКРЕТНЫЕ ОШИБКИ
# =============================================================================

class InvalidCoordinates(InvalidInputError):
    code = "invalid_coordinates"


class InvalidPrice(InvalidInputError):
    code = "invalid_price"


class UnsupportedStatus(InvalidInputError):
    code = "unsupported_status"


class RideNotFound(NotFoundError):
    code = "ride_not_found"

    def __init__(self, ride_id: Any) -> None:
        super().__init__(f"Поездка {ride_id} не найдена", ride_id=str(ride_id))


class BidNotFound(NotFoundError):
    code = "bid_not_found"

    def __init__(self, bid_id: Any, ride_id: Any) -> None:
        super().__init__(
            f"Ставка {bid_id} не найдена у поездки {ride_id}",
            bid_id=str(bid_id),
            ride_id=str(ride_id),
        )


class NotPassenger(ForbiddenError):
    code = "not_passenger"


class NotDriver(ForbiddenError):
    code = "not_driver"


class RoleNotAllowed(ForbiddenError):
    code = "role_not_allowed"


class RideNotOpenForBidding(ConflictError):
    code = "ride_not_open_for_bidding"


class InvalidStatus(ConflictError):
    code = "invalid_status"
