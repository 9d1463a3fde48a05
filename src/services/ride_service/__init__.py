# src/services/ride_service/__init__.py
"""
Ride Service: торги и матчинг поездок.

Обеспечивает:
- Создание поездки пассажиром
- Приём ставок водителей и выбор ставки пассажиром
- Переходы статусов поездки с проверкой ролей
- Публикацию событий ride.* в RabbitMQ
"""
