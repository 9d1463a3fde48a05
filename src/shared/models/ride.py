# src/shared/models/ride.py
"""
DTO поездок и ставок.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.common.constants import MAX_LATITUDE, MAX_LONGITUDE, MIN_LATITUDE, MIN_LONGITUDE
from src.shared.models.enums import BidStatus, RideStatus


class Point(BaseModel):
    """Точка маршрута. Диапазоны координат проверяет сервис, а не схема."""

    lat: float
    lng: float
    address: str | None = None

    class Config:
        from_attributes = True

    @property
    def is_valid(self) -> bool:
        return MIN_LATITUDE <= self.lat <= MAX_LATITUDE and MIN_LONGITUDE <= self.lng <= MAX_LONGITUDE


class RideDTO(BaseModel):
    """Поездка, корень агрегата."""

    id: UUID
    passenger_id: str
    driver_id: str | None = None
    status: RideStatus
    from_: Point = Field(alias="from")
    to: Point
    price: float | None = None
    revision: int = 1
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True

    @property
    def is_matched(self) -> bool:
        """Водитель и цена зафиксированы."""
        return self.driver_id is not None and self.price is not None


class BidDTO(BaseModel):
    """Ценовое предложение водителя по открытой поездке."""

    id: UUID
    ride_id: UUID
    driver_id: str
    price: float
    status: BidStatus = BidStatus.PENDING
    created_at: datetime

    class Config:
        from_attributes = True


class CreateRideRequest(BaseModel):
    from_: Point = Field(alias="from")
    to: Point

    class Config:
        populate_by_name = True


class PlaceBidRequest(BaseModel):
    price: float


class AcceptBidRequest(BaseModel):
    bid_id: UUID


class UpdateStatusRequest(BaseModel):
    # Строка, а не RideStatus: неизвестный статус должен дойти до сервиса и дать InvalidInput
    status: str


class RideListResponse(BaseModel):
    rides: list[RideDTO]


class BidListResponse(BaseModel):
    bids: list[BidDTO]
