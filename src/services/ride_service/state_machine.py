from src.shared.models.enums import RideStatus, UserRole
from src.services.ride_service.errors import UnsupportedStatus


class RideStateMachine:
    # matched достигается только через accept_bid, поэтому его нет среди целей
    ALLOWED_TRANSITIONS = {
        RideStatus.REQUESTED: [RideStatus.CANCELLED],
        RideStatus.BIDDING: [RideStatus.CANCELLED],
        RideStatus.MATCHED: [RideStatus.IN_PROGRESS, RideStatus.CANCELLED],
        RideStatus.IN_PROGRESS: [RideStatus.COMPLETED, RideStatus.CANCELLED],
        RideStatus.COMPLETED: [],
        RideStatus.CANCELLED: [],
    }

    # Кто может выполнить переход в данный статус
    ALLOWED_ACTORS = {
        RideStatus.IN_PROGRESS: frozenset({UserRole.DRIVER}),
        RideStatus.COMPLETED: frozenset({UserRole.DRIVER}),
        RideStatus.CANCELLED: frozenset({UserRole.PASSENGER, UserRole.DRIVER}),
    }

    @classmethod
    def targets(cls) -> frozenset[RideStatus]:
        """Статусы, которые можно выставить через update_status."""
        return frozenset(cls.ALLOWED_ACTORS)

    @classmethod
    def parse_target(cls, value: str) -> RideStatus:
        """Разбирает целевой статус или бросает UnsupportedStatus."""
        try:
            status = RideStatus(value)
        except ValueError:
            raise UnsupportedStatus(f"Неизвестный статус: {value}", status=value) from None
        if status not in cls.targets():
            raise UnsupportedStatus(f"Статус {status} нельзя выставить вручную", status=value)
        return status

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = RideStatus(current_status)
            new = RideStatus(new_status)
        except ValueError:
            return False
        return new in RideStateMachine.ALLOWED_TRANSITIONS.get(curr, [])

    @staticmethod
    def actors_for(new_status: RideStatus) -> frozenset[UserRole]:
        return RideStateMachine.ALLOWED_ACTORS.get(new_status, frozenset())
