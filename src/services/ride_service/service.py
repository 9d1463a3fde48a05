import math
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional, Union
from uuid import UUID

import asyncpg

from src.common.logger import log_error, log_info
from src.config import settings
from src.config.loader import RideSettings
from src.infra.database import CONNECTION_ERRORS, DatabaseManager
from src.shared.models.enums import BidStatus, RideStatus, UserRole
from src.shared.models.ride import BidDTO, Point, RideDTO
from src.services.ride_service.access import authorize_transition, ensure_passenger_of, parse_role
from src.services.ride_service.errors import (
    BidNotFound,
    InvalidCoordinates,
    InvalidPrice,
    InvalidStatus,
    RideEngineError,
    RideNotFound,
    RideNotOpenForBidding,
    StorageError,
)
from src.services.ride_service.publisher import RideEventPublisher
from src.services.ride_service.repository import BidRepository, RideRepository
from src.services.ride_service.state_machine import RideStateMachine

STORAGE_ERRORS = (asyncpg.PostgresError, *CONNECTION_ERRORS)


class RideService:
    """
    Движок торгов и матчинга поездок.

    Все изменения поездки и её ставок идут через транзакцию с блокировкой строки
    поездки, поэтому операции над одной поездкой линеаризуемы. События
    публикуются после коммита.
    """

    def __init__(
        self,
        db: DatabaseManager,
        rides: RideRepository,
        bids: BidRepository,
        publisher: RideEventPublisher,
        limits: Optional[RideSettings] = None,
    ):
        self.db = db
        self.rides = rides
        self.bids = bids
        self.publisher = publisher
        self.limits = limits or settings.rides

    # -------------------------------------------------------------------------
    # Команды
    # -------------------------------------------------------------------------

    async def create_ride(self, passenger_id: str, from_: Point, to: Point) -> RideDTO:
        for name, point in (("from", from_), ("to", to)):
            if not point.is_valid:
                raise InvalidCoordinates(
                    f"Координаты точки '{name}' вне допустимого диапазона",
                    point=name,
                    lat=point.lat,
                    lng=point.lng,
                )

        async with self._storage("create_ride"):
            ride = await self.rides.create_ride(passenger_id, from_, to)

        # Сохранённый requested сразу открыт для ставок
        ride = ride.model_copy(update={"status": RideStatus.BIDDING})

        await log_info(
            f"Поездка создана: {ride.id}",
            extra={"ride_id": str(ride.id), "passenger_id": passenger_id},
        )
        await self.publisher.ride_requested(ride)
        return ride

    async def place_bid(self, ride_id: UUID, driver_id: str, price: float) -> BidDTO:
        if not math.isfinite(price) or price <= 0:
            raise InvalidPrice("Цена ставки должна быть конечным числом больше нуля", price=str(price))

        async with self._storage("place_bid"):
            async with self.db.transaction() as conn:
                ride = await self.rides.get_ride(ride_id, conn=conn, for_update=True)
                if ride is None:
                    raise RideNotFound(ride_id)
                if not ride.status.is_open:
                    raise RideNotOpenForBidding(
                        f"Поездка {ride_id} уже не принимает ставки",
                        ride_id=str(ride_id),
                        status=ride.status.value,
                    )

                bid = await self.bids.create_bid(ride_id, driver_id, price, conn=conn)
                revision = await self.rides.bump_revision(ride_id, conn=conn)

        await log_info(
            f"Ставка {bid.id} на поездку {ride_id}: {price}",
            extra={"ride_id": str(ride_id), "bid_id": str(bid.id), "driver_id": driver_id},
        )
        await self.publisher.bid_placed(bid, revision)
        return bid

    async def accept_bid(self, ride_id: UUID, bid_id: UUID, passenger_id: str) -> RideDTO:
        async with self._storage("accept_bid"):
            try:
                async with self.db.transaction() as conn:
                    ride = await self.rides.get_ride(ride_id, conn=conn, for_update=True)
                    if ride is None:
                        raise RideNotFound(ride_id)

                    ensure_passenger_of(ride, passenger_id)

                    if not ride.status.is_open:
                        raise InvalidStatus(
                            f"Поездка {ride_id} уже не открыта для выбора ставки",
                            ride_id=str(ride_id),
                            status=ride.status.value,
                        )

                    bid = await self.bids.get_bid(bid_id, conn=conn)
                    if bid is None or bid.ride_id != ride_id:
                        raise BidNotFound(bid_id, ride_id)
                    if bid.status != BidStatus.PENDING:
                        raise InvalidStatus(
                            f"Ставка {bid_id} уже {bid.status.value}",
                            bid_id=str(bid_id),
                            status=bid.status.value,
                        )

                    accepted = await self.bids.accept_bid(ride_id, bid_id, conn=conn)
                    if accepted is None:
                        raise InvalidStatus(f"Ставка {bid_id} уже обработана", bid_id=str(bid_id))

                    rejected = await self.bids.reject_others(ride_id, bid_id, conn=conn)

                    matched = await self.rides.mark_matched(
                        ride_id, accepted.driver_id, accepted.price, conn=conn
                    )
                    if matched is None:
                        raise InvalidStatus(
                            f"Поездка {ride_id} уже сматчена",
                            ride_id=str(ride_id),
                        )
            except asyncpg.UniqueViolationError as e:
                raise InvalidStatus(
                    f"Для поездки {ride_id} уже принята другая ставка",
                    ride_id=str(ride_id),
                ) from e

        await log_info(
            f"Поездка {ride_id} сматчена: водитель {matched.driver_id}, цена {matched.price}, "
            f"отклонено ставок: {rejected}",
            extra={"ride_id": str(ride_id), "bid_id": str(bid_id)},
        )
        await self.publisher.ride_matched(matched)
        return matched

    async def update_status(
        self,
        ride_id: UUID,
        new_status: Union[str, RideStatus],
        caller_id: str,
        caller_role: Union[str, UserRole],
    ) -> RideDTO:
        target = RideStateMachine.parse_target(new_status)
        role = parse_role(caller_role)

        async with self._storage("update_status"):
            async with self.db.transaction() as conn:
                ride = await self.rides.get_ride(ride_id, conn=conn, for_update=True)
                if ride is None:
                    raise RideNotFound(ride_id)

                if not RideStateMachine.can_transition(ride.status, target):
                    raise InvalidStatus(
                        f"Недопустимый переход {ride.status.value} -> {target.value}",
                        ride_id=str(ride_id),
                        current=ride.status.value,
                        target=target.value,
                    )

                authorize_transition(ride, target, caller_id, role)

                updated = await self.rides.update_status(ride_id, target, ride.status, conn=conn)
                if updated is None:
                    raise InvalidStatus(f"Статус поездки {ride_id} изменился", ride_id=str(ride_id))

        await log_info(
            f"Статус поездки {ride_id}: {ride.status.value} -> {target.value}",
            extra={"ride_id": str(ride_id), "caller_id": caller_id, "role": role.value},
        )
        await self.publisher.status_changed(updated)
        return updated

    # -------------------------------------------------------------------------
    # Запросы
    # -------------------------------------------------------------------------

    async def get_ride(self, ride_id: UUID) -> RideDTO:
        async with self._storage("get_ride"):
            ride = await self.rides.get_ride(ride_id)
        if ride is None:
            raise RideNotFound(ride_id)
        return ride

    async def list_bids(self, ride_id: UUID) -> List[BidDTO]:
        async with self._storage("list_bids"):
            if await self.rides.get_ride(ride_id) is None:
                raise RideNotFound(ride_id)
            return await self.bids.list_by_ride(ride_id)

    async def list_rides_by_passenger(self, passenger_id: str, limit: Optional[int] = None) -> List[RideDTO]:
        async with self._storage("list_rides_by_passenger"):
            return await self.rides.list_by_passenger(passenger_id, self.clamp_limit(limit))

    async def list_rides_by_driver(self, driver_id: str, limit: Optional[int] = None) -> List[RideDTO]:
        async with self._storage("list_rides_by_driver"):
            return await self.rides.list_by_driver(driver_id, self.clamp_limit(limit))

    async def list_open_rides(self, limit: Optional[int] = None) -> List[RideDTO]:
        async with self._storage("list_open_rides"):
            return await self.rides.list_open(self.clamp_limit(limit))

    async def list_all_rides(self, limit: Optional[int] = None) -> List[RideDTO]:
        async with self._storage("list_all_rides"):
            return await self.rides.list_all(self.clamp_limit(limit))

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Пустой или неположительный лимит означает лимит по умолчанию."""
        if limit is None or limit <= 0:
            return self.limits.RIDES_DEFAULT_LIMIT
        return min(limit, self.limits.RIDES_MAX_LIMIT)

    @asynccontextmanager
    async def _storage(self, operation: str) -> AsyncGenerator[None, None]:
        """Переводит ошибки PostgreSQL в StorageError. Доменные ошибки проходят как есть."""
        try:
            yield
        except RideEngineError:
            raise
        except STORAGE_ERRORS as e:
            await log_error(
                f"Ошибка хранилища в {operation}: {e}",
                extra={"operation": operation},
                exc_info=True,
            )
            raise StorageError(f"Хранилище недоступно ({operation})", operation=operation) from e
