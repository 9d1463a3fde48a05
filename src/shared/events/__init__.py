# src/shared/events/__init__.py
"""
Схемы событий для RabbitMQ.

Все события идемпотентны: содержат event_id для дедупликации
и revision для упорядочивания в рамках одной поездки.
"""

from src.shared.events.base import DomainEvent, EventMetadata
from src.shared.events.ride_events import (
    RideEvent,
    RideRequested,
    RideBidPlaced,
    RideMatched,
    RideStatusChanged,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    # Ride events
    "RideEvent",
    "RideRequested",
    "RideBidPlaced",
    "RideMatched",
    "RideStatusChanged",
]
