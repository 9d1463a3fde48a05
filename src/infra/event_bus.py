# src/infra/event_bus.py
"""
Шина событий на базе RabbitMQ.
Сервис поездок только публикует события: потребители подписываются сами.
"""

from __future__ import annotations

from datetime import datetime, timezone

import aio_pika
from aio_pika import Message, DeliveryMode, ExchangeType
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection

from src.common.logger import log_info, log_warning
from src.common.constants import TypeMsg
from src.shared.events.base import DomainEvent


class EventBus:
    """
    Публикатор событий в topic exchange.

    Routing key совпадает с типом события (ride.requested, ride.matched, ...).
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = "ride.events"

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    @property
    def exchange_name(self) -> str:
        return self._exchange_name

    async def connect(self, url: str, exchange_name: str | None = None) -> None:
        """
        Подключается к RabbitMQ и объявляет exchange.

        Args:
            url: URL RabbitMQ
            exchange_name: Имя exchange
        """
        if self.is_connected:
            return

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info(
            f"Подключение к RabbitMQ установлено, exchange={self._exchange_name}",
            type_msg=TypeMsg.INFO,
        )

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> bool:
        """
        Публикует событие в exchange.

        Args:
            event: Доменное событие

        Returns:
            True если брокер принял сообщение
        """
        if not self.is_connected or self._exchange is None:
            await log_warning(
                f"Не удалось опубликовать {event.event_type}: нет соединения с RabbitMQ",
                extra={"event_id": event.event_id},
            )
            return False

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            type=event.event_type,
            timestamp=datetime.now(timezone.utc),
            delivery_mode=DeliveryMode.PERSISTENT,
        )

        try:
            await self._exchange.publish(message, routing_key=event.routing_key)
        except Exception as e:
            await log_warning(
                f"Ошибка публикации события {event.event_type}: {e}",
                extra={"event_id": event.event_id},
            )
            return False

        await log_info(
            f"Событие опубликовано: {event.event_type}",
            type_msg=TypeMsg.DEBUG,
            extra={"event_id": event.event_id},
        )
        return True

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к RabbitMQ.

        Returns:
            True если подключение работает
        """
        return self.is_connected


# Глобальный экземпляр
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Возвращает глобальный экземпляр EventBus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> EventBus:
    """
    Инициализирует подключение к RabbitMQ.
    Использует настройки из конфигурации.
    """
    from src.config import settings

    event_bus = get_event_bus()
    await event_bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
    )
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return event_bus


async def close_event_bus() -> None:
    """Закрывает подключение к RabbitMQ."""
    await get_event_bus().disconnect()
