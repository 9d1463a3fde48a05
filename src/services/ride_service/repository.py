from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional
from uuid import UUID

from asyncpg import Connection, Record

from src.infra.database import DatabaseManager
from src.shared.models.enums import BidStatus, RideStatus
from src.shared.models.ride import BidDTO, Point, RideDTO

RIDE_COLUMNS = """
    id, passenger_id, driver_id, status,
    from_lat, from_lng, from_address,
    to_lat, to_lng, to_address,
    price, revision, created_at, updated_at
"""

BID_COLUMNS = "id, ride_id, driver_id, price, status, created_at"

OPEN_STATUS_VALUES = [RideStatus.REQUESTED.value, RideStatus.BIDDING.value]


class _Repository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    @asynccontextmanager
    async def _connection(self, conn: Optional[Connection]) -> AsyncGenerator[Connection, None]:
        """Переданное соединение (внутри транзакции) или новое из пула."""
        if conn is not None:
            yield conn
        else:
            async with self.db.acquire() as connection:
                yield connection


class RideRepository(_Repository):
    async def create_ride(
        self,
        passenger_id: str,
        from_: Point,
        to: Point,
        conn: Optional[Connection] = None,
    ) -> RideDTO:
        """Creates a ride in 'requested' status."""
        async with self._connection(conn) as connection:
            query = f"""
                INSERT INTO rides_schema.rides (
                    passenger_id, status,
                    from_lat, from_lng, from_address,
                    to_lat, to_lng, to_address
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING {RIDE_COLUMNS}
            """
            row = await connection.fetchrow(
                query,
                passenger_id,
                RideStatus.REQUESTED.value,
                from_.lat, from_.lng, from_.address,
                to.lat, to.lng, to.address,
            )
            return map_ride(row)

    async def get_ride(
        self,
        ride_id: UUID,
        conn: Optional[Connection] = None,
        for_update: bool = False,
    ) -> Optional[RideDTO]:
        """Retrieves a ride by ID. With for_update locks the row until the transaction ends."""
        async with self._connection(conn) as connection:
            query = f"SELECT {RIDE_COLUMNS} FROM rides_schema.rides WHERE id = $1"
            if for_update:
                query += " FOR UPDATE"
            row = await connection.fetchrow(query, ride_id)
            return map_ride(row) if row else None

    async def bump_revision(self, ride_id: UUID, conn: Optional[Connection] = None) -> int:
        """Increments the ride revision without touching its fields."""
        async with self._connection(conn) as connection:
            query = """
                UPDATE rides_schema.rides
                SET revision = revision + 1
                WHERE id = $1
                RETURNING revision
            """
            return await connection.fetchval(query, ride_id)

    async def mark_matched(
        self,
        ride_id: UUID,
        driver_id: str,
        price: float,
        conn: Optional[Connection] = None,
    ) -> Optional[RideDTO]:
        """Fixes driver and price. Returns None if the ride is no longer open."""
        async with self._connection(conn) as connection:
            query = f"""
                UPDATE rides_schema.rides
                SET driver_id = $2,
                    price = $3,
                    status = $4,
                    revision = revision + 1,
                    updated_at = NOW()
                WHERE id = $1
                  AND status = ANY($5::text[])
                  AND driver_id IS NULL
                RETURNING {RIDE_COLUMNS}
            """
            row = await connection.fetchrow(
                query,
                ride_id,
                driver_id,
                price,
                RideStatus.MATCHED.value,
                OPEN_STATUS_VALUES,
            )
            return map_ride(row) if row else None

    async def update_status(
        self,
        ride_id: UUID,
        status: RideStatus,
        expected_status: RideStatus,
        conn: Optional[Connection] = None,
    ) -> Optional[RideDTO]:
        """Updates the status if it still equals expected_status."""
        async with self._connection(conn) as connection:
            query = f"""
                UPDATE rides_schema.rides
                SET status = $2,
                    revision = revision + 1,
                    updated_at = NOW()
                WHERE id = $1 AND status = $3
                RETURNING {RIDE_COLUMNS}
            """
            row = await connection.fetchrow(query, ride_id, status.value, expected_status.value)
            return map_ride(row) if row else None

    async def list_by_passenger(self, passenger_id: str, limit: int) -> List[RideDTO]:
        async with self._connection(None) as connection:
            query = f"""
                SELECT {RIDE_COLUMNS} FROM rides_schema.rides
                WHERE passenger_id = $1
                ORDER BY created_at DESC, id
                LIMIT $2
            """
            rows = await connection.fetch(query, passenger_id, limit)
            return [map_ride(row) for row in rows]

    async def list_by_driver(self, driver_id: str, limit: int) -> List[RideDTO]:
        async with self._connection(None) as connection:
            query = f"""
                SELECT {RIDE_COLUMNS} FROM rides_schema.rides
                WHERE driver_id = $1
                ORDER BY created_at DESC, id
                LIMIT $2
            """
            rows = await connection.fetch(query, driver_id, limit)
            return [map_ride(row) for row in rows]

    async def list_open(self, limit: int) -> List[RideDTO]:
        """Rides still accepting bids."""
        async with self._connection(None) as connection:
            query = f"""
                SELECT {RIDE_COLUMNS} FROM rides_schema.rides
                WHERE status = ANY($1::text[])
                ORDER BY created_at DESC, id
                LIMIT $2
            """
            rows = await connection.fetch(query, OPEN_STATUS_VALUES, limit)
            return [map_ride(row) for row in rows]

    async def list_all(self, limit: int) -> List[RideDTO]:
        async with self._connection(None) as connection:
            query = f"""
                SELECT {RIDE_COLUMNS} FROM rides_schema.rides
                ORDER BY created_at DESC, id
                LIMIT $1
            """
            rows = await connection.fetch(query, limit)
            return [map_ride(row) for row in rows]


class BidRepository(_Repository):
    async def create_bid(
        self,
        ride_id: UUID,
        driver_id: str,
        price: float,
        conn: Optional[Connection] = None,
    ) -> BidDTO:
        """Creates a pending bid."""
        async with self._connection(conn) as connection:
            query = f"""
                INSERT INTO rides_schema.bids (ride_id, driver_id, price, status)
                VALUES ($1, $2, $3, $4)
                RETURNING {BID_COLUMNS}
            """
            row = await connection.fetchrow(query, ride_id, driver_id, price, BidStatus.PENDING.value)
            return map_bid(row)

    async def get_bid(self, bid_id: UUID, conn: Optional[Connection] = None) -> Optional[BidDTO]:
        async with self._connection(conn) as connection:
            query = f"SELECT {BID_COLUMNS} FROM rides_schema.bids WHERE id = $1"
            row = await connection.fetchrow(query, bid_id)
            return map_bid(row) if row else None

    async def list_by_ride(self, ride_id: UUID, conn: Optional[Connection] = None) -> List[BidDTO]:
        """All bids of a ride, oldest first."""
        async with self._connection(conn) as connection:
            query = f"""
                SELECT {BID_COLUMNS} FROM rides_schema.bids
                WHERE ride_id = $1
                ORDER BY created_at ASC, id
            """
            rows = await connection.fetch(query, ride_id)
            return [map_bid(row) for row in rows]

    async def accept_bid(
        self,
        ride_id: UUID,
        bid_id: UUID,
        conn: Optional[Connection] = None,
    ) -> Optional[BidDTO]:
        """Marks a pending bid accepted. Returns None if it is not pending or belongs to another ride."""
        async with self._connection(conn) as connection:
            query = f"""
                UPDATE rides_schema.bids
                SET status = $3
                WHERE id = $1 AND ride_id = $2 AND status = $4
                RETURNING {BID_COLUMNS}
            """
            row = await connection.fetchrow(
                query,
                bid_id,
                ride_id,
                BidStatus.ACCEPTED.value,
                BidStatus.PENDING.value,
            )
            return map_bid(row) if row else None

    async def reject_others(
        self,
        ride_id: UUID,
        accepted_bid_id: UUID,
        conn: Optional[Connection] = None,
    ) -> int:
        """Rejects every other bid of the ride. Returns the number of rejected bids."""
        async with self._connection(conn) as connection:
            query = """
                UPDATE rides_schema.bids
                SET status = $3
                WHERE ride_id = $1 AND id <> $2 AND status <> $3
            """
            result = await connection.execute(query, ride_id, accepted_bid_id, BidStatus.REJECTED.value)
            return _affected_rows(result)


def map_ride(row: Record | dict[str, Any]) -> RideDTO:
    return RideDTO(
        id=row["id"],
        passenger_id=row["passenger_id"],
        driver_id=row["driver_id"],
        status=RideStatus(row["status"]),
        from_=Point(lat=row["from_lat"], lng=row["from_lng"], address=row["from_address"]),
        to=Point(lat=row["to_lat"], lng=row["to_lng"], address=row["to_address"]),
        price=row["price"],
        revision=row["revision"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_bid(row: Record | dict[str, Any]) -> BidDTO:
    return BidDTO(
        id=row["id"],
        ride_id=row["ride_id"],
        driver_id=row["driver_id"],
        price=row["price"],
        status=BidStatus(row["status"]),
        created_at=row["created_at"],
    )


def _affected_rows(status: str) -> int:
    # asyncpg возвращает тег команды вида "UPDATE 3"
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
