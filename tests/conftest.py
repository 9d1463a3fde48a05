# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("RABBITMQ_ENABLED", "false")

from src.config.loader import RideSettings
from src.shared.models.enums import BidStatus, OPEN_STATUSES, RideStatus
from src.shared.models.ride import BidDTO, Point, RideDTO
from src.services.ride_service.service import RideService


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "ride_engine_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "RIDE_SERVICE_HOST": "127.0.0.1",
        "RIDE_SERVICE_PORT": 9083,
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "json",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_MAX_BYTES": 1048576,
        "DB_HOST": "db.test",
        "DB_PORT": 5433,
        "DB_NAME": "ride_engine_test",
        "DB_USER": "tester",
        "DB_PASSWORD": "test_password",
        "DB_MIN_POOL_SIZE": 2,
        "DB_MAX_POOL_SIZE": 5,
        "DB_COMMAND_TIMEOUT": 30,
        "DB_CONNECT_ATTEMPTS": 2,
        "DB_CONNECT_RETRY_DELAY": 0.5,
        "RABBITMQ_ENABLED": True,
        "RABBITMQ_HOST": "mq.test",
        "RABBITMQ_PORT": 5673,
        "RABBITMQ_USER": "guest",
        "RABBITMQ_PASSWORD": "guest",
        "RABBITMQ_VHOST": "/",
        "RABBITMQ_EXCHANGE": "ride.test",
        "RIDES_DEFAULT_LIMIT": 10,
        "RIDES_MAX_LIMIT": 50,
    }


@pytest.fixture
def ride_limits() -> RideSettings:
    return RideSettings(RIDES_DEFAULT_LIMIT=20, RIDES_MAX_LIMIT=100)


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_connection() -> AsyncMock:
    """Мок соединения asyncpg."""
    conn = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.execute = AsyncMock(return_value="UPDATE 0")
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_db(mock_connection: AsyncMock) -> MagicMock:
    """Мок менеджера базы данных: acquire() и transaction() отдают mock_connection."""
    db = MagicMock()

    @asynccontextmanager
    async def _conn() -> AsyncGenerator[AsyncMock, None]:
        yield mock_connection

    db.acquire = MagicMock(side_effect=_conn)
    db.transaction = MagicMock(side_effect=_conn)
    db.health_check = AsyncMock(return_value=True)
    return db


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


@pytest.fixture
def mock_publisher() -> AsyncMock:
    """Мок публикатора событий поездки."""
    publisher = AsyncMock()
    publisher.ride_requested = AsyncMock(return_value=None)
    publisher.bid_placed = AsyncMock(return_value=None)
    publisher.ride_matched = AsyncMock(return_value=None)
    publisher.status_changed = AsyncMock(return_value=None)
    return publisher


# =============================================================================
# IN-MEMORY ХРАНИЛИЩЕ
# =============================================================================

_clock = itertools.count()
_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _tick() -> datetime:
    """Строго возрастающее время, чтобы порядок по created_at был детерминирован."""
    return _EPOCH + timedelta(milliseconds=next(_clock))


class FakeDatabase:
    """
    Заменитель DatabaseManager.
    Транзакции сериализуются общей блокировкой, как блокировка строки поездки.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[FakeDatabase, None]:
        async with self._lock:
            self.transactions += 1
            yield self

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[FakeDatabase, None]:
        yield self

    async def health_check(self) -> bool:
        return True


class InMemoryRideRepository:
    """RideRepository поверх словаря."""

    def __init__(self) -> None:
        self.rides: dict[UUID, RideDTO] = {}

    async def create_ride(self, passenger_id: str, from_: Point, to: Point, conn: Any = None) -> RideDTO:
        now = _tick()
        ride = RideDTO(
            id=uuid4(),
            passenger_id=passenger_id,
            status=RideStatus.REQUESTED,
            from_=from_,
            to=to,
            created_at=now,
            updated_at=now,
        )
        self.rides[ride.id] = ride
        return ride

    async def get_ride(self, ride_id: UUID, conn: Any = None, for_update: bool = False) -> RideDTO | None:
        # Отдаём управление циклу, чтобы конкурирующие корутины перемешались
        await asyncio.sleep(0)
        return self.rides.get(ride_id)

    async def bump_revision(self, ride_id: UUID, conn: Any = None) -> int:
        ride = self.rides[ride_id]
        self.rides[ride_id] = ride.model_copy(update={"revision": ride.revision + 1})
        return ride.revision + 1

    async def mark_matched(self, ride_id: UUID, driver_id: str, price: float, conn: Any = None) -> RideDTO | None:
        ride = self.rides.get(ride_id)
        if ride is None or ride.status not in OPEN_STATUSES or ride.driver_id is not None:
            return None
        updated = ride.model_copy(update={
            "driver_id": driver_id,
            "price": price,
            "status": RideStatus.MATCHED,
            "revision": ride.revision + 1,
            "updated_at": _tick(),
        })
        self.rides[ride_id] = updated
        return updated

    async def update_status(
        self, ride_id: UUID, status: RideStatus, expected_status: RideStatus, conn: Any = None
    ) -> RideDTO | None:
        ride = self.rides.get(ride_id)
        if ride is None or ride.status != expected_status:
            return None
        updated = ride.model_copy(update={
            "status": status,
            "revision": ride.revision + 1,
            "updated_at": _tick(),
        })
        self.rides[ride_id] = updated
        return updated

    def _newest(self, rides: list[RideDTO], limit: int) -> list[RideDTO]:
        return sorted(rides, key=lambda r: r.created_at, reverse=True)[:limit]

    async def list_by_passenger(self, passenger_id: str, limit: int) -> list[RideDTO]:
        return self._newest([r for r in self.rides.values() if r.passenger_id == passenger_id], limit)

    async def list_by_driver(self, driver_id: str, limit: int) -> list[RideDTO]:
        return self._newest([r for r in self.rides.values() if r.driver_id == driver_id], limit)

    async def list_open(self, limit: int) -> list[RideDTO]:
        return self._newest([r for r in self.rides.values() if r.status in OPEN_STATUSES], limit)

    async def list_all(self, limit: int) -> list[RideDTO]:
        return self._newest(list(self.rides.values()), limit)


class InMemoryBidRepository:
    """BidRepository поверх словаря."""

    def __init__(self) -> None:
        self.bids: dict[UUID, BidDTO] = {}

    async def create_bid(self, ride_id: UUID, driver_id: str, price: float, conn: Any = None) -> BidDTO:
        bid = BidDTO(id=uuid4(), ride_id=ride_id, driver_id=driver_id, price=price, created_at=_tick())
        self.bids[bid.id] = bid
        return bid

    async def get_bid(self, bid_id: UUID, conn: Any = None) -> BidDTO | None:
        await asyncio.sleep(0)
        return self.bids.get(bid_id)

    async def list_by_ride(self, ride_id: UUID, conn: Any = None) -> list[BidDTO]:
        bids = [b for b in self.bids.values() if b.ride_id == ride_id]
        return sorted(bids, key=lambda b: b.created_at)

    async def accept_bid(self, ride_id: UUID, bid_id: UUID, conn: Any = None) -> BidDTO | None:
        bid = self.bids.get(bid_id)
        if bid is None or bid.ride_id != ride_id or bid.status != BidStatus.PENDING:
            return None
        accepted = bid.model_copy(update={"status": BidStatus.ACCEPTED})
        self.bids[bid_id] = accepted
        return accepted

    async def reject_others(self, ride_id: UUID, accepted_bid_id: UUID, conn: Any = None) -> int:
        count = 0
        for bid in list(self.bids.values()):
            if bid.ride_id == ride_id and bid.id != accepted_bid_id and bid.status != BidStatus.REJECTED:
                self.bids[bid.id] = bid.model_copy(update={"status": BidStatus.REJECTED})
                count += 1
        return count


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def ride_repo() -> InMemoryRideRepository:
    return InMemoryRideRepository()


@pytest.fixture
def bid_repo() -> InMemoryBidRepository:
    return InMemoryBidRepository()


@pytest.fixture
def ride_service(
    fake_db: FakeDatabase,
    ride_repo: InMemoryRideRepository,
    bid_repo: InMemoryBidRepository,
    mock_publisher: AsyncMock,
    ride_limits: RideSettings,
) -> RideService:
    """Движок поездок поверх in-memory хранилища."""
    return RideService(
        db=fake_db,
        rides=ride_repo,
        bids=bid_repo,
        publisher=mock_publisher,
        limits=ride_limits,
    )


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def point_a() -> Point:
    return Point(lat=0.0, lng=0.0, address="Точка А")


@pytest.fixture
def point_b() -> Point:
    return Point(lat=1.0, lng=1.0)


@pytest.fixture
def sample_ride_row() -> dict[str, Any]:
    """Строка rides_schema.rides в виде словаря."""
    now = datetime.now(timezone.utc)
    return {
        "id": uuid4(),
        "passenger_id": "passenger-1",
        "driver_id": None,
        "status": "requested",
        "from_lat": 50.4501,
        "from_lng": 30.5234,
        "from_address": "Крещатик, 1",
        "to_lat": 50.3450,
        "to_lng": 30.8940,
        "to_address": None,
        "price": None,
        "revision": 1,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_bid_row(sample_ride_row: dict[str, Any]) -> dict[str, Any]:
    """Строка rides_schema.bids в виде словаря."""
    return {
        "id": uuid4(),
        "ride_id": sample_ride_row["id"],
        "driver_id": "driver-1",
        "price": 450.0,
        "status": "pending",
        "created_at": datetime.now(timezone.utc),
    }


# =============================================================================
# УТИЛИТЫ
# =============================================================================

@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file
