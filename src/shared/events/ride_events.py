# src/shared/events/ride_events.py
"""
События домена поездок.

Каждое событие несёт ride_id и revision, порядковый номер изменения поездки.
Потребитель может отбрасывать дубликаты и события, пришедшие не по порядку,
сравнивая revision с последним обработанным для этой поездки.
"""

from __future__ import annotations

from typing import Any, Literal

from src.shared.events.base import DomainEvent


class RideEvent(DomainEvent):
    """Общая часть событий поездки."""

    ride_id: str
    revision: int


class RideRequested(RideEvent):
    """Событие: пассажир создал поездку."""

    event_type: Literal["ride.requested"] = "ride.requested"

    passenger_id: str
    ride: dict[str, Any]  # полный снимок поездки


class RideBidPlaced(RideEvent):
    """Событие: водитель сделал ставку."""

    event_type: Literal["ride.bid.placed"] = "ride.bid.placed"

    bid_id: str
    driver_id: str
    price: float


class RideMatched(RideEvent):
    """Событие: пассажир принял ставку, водитель и цена зафиксированы."""

    event_type: Literal["ride.matched"] = "ride.matched"

    driver_id: str
    price: float


class RideStatusChanged(RideEvent):
    """Событие: статус поездки изменён (in_progress, completed, cancelled)."""

    event_type: Literal["ride.status.changed"] = "ride.status.changed"

    status: str
