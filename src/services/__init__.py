# src/services/__init__.py
"""
Сервисы приложения.

Архитектура:
- Сервис: независимое FastAPI-приложение
- PostgreSQL как единственное хранилище состояния
- События в RabbitMQ публикуются после коммита

Сервисы:
- ride_service: поездки, ставки водителей, матчинг и статусы
"""

__all__: list[str] = []
