"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Имя корневого логгера сервиса
DEFAULT_LOGGER_NAME = "ride_engine"

# Заголовки, которыми API-шлюз передаёт уже аутентифицированную личность
USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

# Границы координат
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
