# src/services/ride_service/publisher.py
"""
Публикация событий поездки.

Публикация идёт после коммита и никогда не влияет на результат операции:
ошибки транспорта записываются как предупреждения.
"""

from __future__ import annotations

from typing import Protocol

from src.common.constants import TypeMsg
from src.common.logger import log_debug, log_info, log_warning
from src.infra.event_bus import EventBus
from src.shared.events.base import DomainEvent
from src.shared.events.ride_events import (
    RideBidPlaced,
    RideMatched,
    RideRequested,
    RideStatusChanged,
)
from src.shared.models.ride import BidDTO, RideDTO


class RideEventPublisher(Protocol):
    async def ride_requested(self, ride: RideDTO) -> None: ...

    async def bid_placed(self, bid: BidDTO, revision: int) -> None: ...

    async def ride_matched(self, ride: RideDTO) -> None: ...

    async def status_changed(self, ride: RideDTO) -> None: ...


class BusRideEventPublisher:
    """Публикует события поездки в RabbitMQ через EventBus."""

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus

    async def ride_requested(self, ride: RideDTO) -> None:
        await self._publish(
            RideRequested(
                ride_id=str(ride.id),
                revision=ride.revision,
                passenger_id=ride.passenger_id,
                ride=ride.model_dump(mode="json", by_alias=True),
            )
        )

    async def bid_placed(self, bid: BidDTO, revision: int) -> None:
        await self._publish(
            RideBidPlaced(
                ride_id=str(bid.ride_id),
                revision=revision,
                bid_id=str(bid.id),
                driver_id=bid.driver_id,
                price=bid.price,
            )
        )

    async def ride_matched(self, ride: RideDTO) -> None:
        await self._publish(
            RideMatched(
                ride_id=str(ride.id),
                revision=ride.revision,
                driver_id=ride.driver_id,
                price=ride.price,
            )
        )

    async def status_changed(self, ride: RideDTO) -> None:
        await self._publish(
            RideStatusChanged(
                ride_id=str(ride.id),
                revision=ride.revision,
                status=ride.status.value,
            )
        )

    async def _publish(self, event: DomainEvent) -> bool:
        """Недоставку уже записал EventBus.publish."""
        try:
            return await self.event_bus.publish(event)
        except Exception as e:
            await log_warning(
                f"Событие {event.event_type} не доставлено: {e}",
                extra={"event_id": event.event_id},
            )
            return False


class NoopRideEventPublisher:
    """Отбрасывает события. Для окружений без брокера."""

    async def ride_requested(self, ride: RideDTO) -> None:
        await log_debug(f"Событие ride.requested отброшено: {ride.id}")

    async def bid_placed(self, bid: BidDTO, revision: int) -> None:
        await log_debug(f"Событие ride.bid.placed отброшено: {bid.ride_id}")

    async def ride_matched(self, ride: RideDTO) -> None:
        await log_debug(f"Событие ride.matched отброшено: {ride.id}")

    async def status_changed(self, ride: RideDTO) -> None:
        await log_debug(f"Событие ride.status.changed отброшено: {ride.id}")


async def build_publisher() -> RideEventPublisher:
    """
    Подключает шину событий и возвращает публикатор.
    Если брокер выключен в конфиге или недоступен, события отбрасываются.
    """
    from src.config import settings
    from src.infra.event_bus import init_event_bus

    if not settings.rabbitmq.RABBITMQ_ENABLED:
        await log_info("RabbitMQ выключен, события поездок не публикуются", type_msg=TypeMsg.WARNING)
        return NoopRideEventPublisher()

    try:
        event_bus = await init_event_bus()
    except Exception as e:
        await log_warning(f"RabbitMQ недоступен, события поездок не публикуются: {e}")
        return NoopRideEventPublisher()

    return BusRideEventPublisher(event_bus)
