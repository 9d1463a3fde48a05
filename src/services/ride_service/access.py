# src/services/ride_service/access.py
"""
Проверки доступа к поездкам.

Личность вызывающего уже аутентифицирована шлюзом; здесь только сопоставление
идентификатора и роли с правами на конкретную поездку.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.shared.models.enums import RideStatus, UserRole
from src.shared.models.ride import RideDTO
from src.services.ride_service.errors import NotDriver, NotPassenger, RoleNotAllowed
from src.services.ride_service.state_machine import RideStateMachine


@dataclass(frozen=True)
class Caller:
    """Аутентифицированный вызывающий."""

    user_id: str
    role: UserRole


def parse_role(value: str) -> UserRole:
    """Строковая роль из заголовка в UserRole."""
    try:
        return UserRole(value.strip().lower())
    except ValueError:
        raise RoleNotAllowed(f"Неизвестная роль: {value}", role=value) from None


def require_role(caller: Caller, *roles: UserRole) -> None:
    if caller.role not in roles:
        raise RoleNotAllowed(
            f"Операция недоступна для роли {caller.role}",
            role=str(caller.role),
            allowed=[str(r) for r in roles],
        )


def ensure_passenger_of(ride: RideDTO, caller_id: str) -> None:
    if ride.passenger_id != caller_id:
        raise NotPassenger(
            "Только пассажир поездки может выполнить это действие",
            ride_id=str(ride.id),
        )


def ensure_driver_of(ride: RideDTO, caller_id: str) -> None:
    if ride.driver_id is None or ride.driver_id != caller_id:
        raise NotDriver(
            "Только назначенный водитель может выполнить это действие",
            ride_id=str(ride.id),
        )


def authorize_transition(
    ride: RideDTO,
    new_status: RideStatus,
    caller_id: str,
    caller_role: UserRole,
) -> None:
    """
    Проверяет, что вызывающий может перевести поездку в new_status.

    Переход уже должен быть допустим по графу статусов.
    """
    actors = RideStateMachine.actors_for(new_status)

    match caller_role:
        case UserRole.PASSENGER:
            if UserRole.PASSENGER not in actors:
                raise NotDriver(
                    f"Статус {new_status} выставляет только водитель",
                    ride_id=str(ride.id),
                )
            ensure_passenger_of(ride, caller_id)
        case UserRole.DRIVER:
            if UserRole.DRIVER not in actors:
                raise NotPassenger(
                    f"Статус {new_status} выставляет только пассажир",
                    ride_id=str(ride.id),
                )
            ensure_driver_of(ride, caller_id)
        case UserRole.ADMIN:
            raise RoleNotAllowed(
                "Администратор не меняет статус поездки",
                role=str(caller_role),
            )
