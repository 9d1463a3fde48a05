from enum import Enum


class RideStatus(str, Enum):
    """Статусы поездки."""
    REQUESTED = "requested"
    BIDDING = "bidding"
    MATCHED = "matched"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_open(self) -> bool:
        """Поездка принимает ставки и может быть сматчена."""
        return self in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


OPEN_STATUSES = frozenset({RideStatus.REQUESTED, RideStatus.BIDDING})
TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})


class BidStatus(str, Enum):
    """Статусы ставки водителя."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


class UserRole(str, Enum):
    """Роли пользователей."""
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"

    def __str__(self) -> str:
        return self.value
