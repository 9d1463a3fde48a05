# src/shared/events/base.py
"""
Базовые классы для доменных событий.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field, field_serializer


class EventMetadata(BaseModel):
    """Метаданные события для трассировки и дедупликации."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_service: str = "ride_service"
    version: int = 1

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return value.isoformat().replace("+00:00", "Z")


class DomainEvent(BaseModel):
    """
    Базовый класс для всех доменных событий.

    Событие неизменяемо, сериализуется в JSON, а его обработка
    должна быть идемпотентной по event_id.
    """

    class Config:
        frozen = True

    event_type: str = ""
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    def to_json(self) -> str:
        """Сериализует событие в JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "DomainEvent":
        """Десериализует событие из JSON."""
        return cls.model_validate_json(data)

    @property
    def event_id(self) -> str:
        return self.metadata.event_id

    @property
    def timestamp(self) -> datetime:
        return self.metadata.timestamp

    @property
    def routing_key(self) -> str:
        """Ключ маршрутизации в topic exchange совпадает с типом события."""
        return self.event_type


