# src/config/loader.py
"""
Загрузчик конфигурации сервиса.
Единственный источник истины: config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить через RIDE_CONFIG_PATH)."""
    override = os.getenv("RIDE_CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_engine"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Адрес и порт HTTP-сервиса поездок."""
    RIDE_SERVICE_HOST: str = "0.0.0.0"
    RIDE_SERVICE_PORT: int = 8083


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "ride_engine"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_CONNECT_ATTEMPTS: int = 3
    DB_CONNECT_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения, если он не задан."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DatabaseSettings":
        """Минимальный размер пула не может превышать максимальный."""
        if self.DB_MIN_POOL_SIZE > self.DB_MAX_POOL_SIZE:
            raise ValueError("DB_MIN_POOL_SIZE больше DB_MAX_POOL_SIZE")
        return self

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (шина доменных событий)."""
    RABBITMQ_ENABLED: bool = True
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "ride.events"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Пароль из окружения имеет приоритет."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class RideSettings(BaseModel):
    """Ограничения выборок поездок."""
    RIDES_DEFAULT_LIMIT: int = Field(default=20, ge=1)
    RIDES_MAX_LIMIT: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def check_limits(self) -> "RideSettings":
        """Лимит по умолчанию не может превышать максимальный."""
        if self.RIDES_DEFAULT_LIMIT > self.RIDES_MAX_LIMIT:
            raise ValueError("RIDES_DEFAULT_LIMIT больше RIDES_MAX_LIMIT")
        return self


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    rides: RideSettings = Field(default_factory=RideSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Раскладывает плоский словарь config.json по секциям.
        Адреса, учётные данные и флаги окружения берутся из переменных окружения, если заданы.
        """
        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "ride_engine"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=_env_bool("DEBUG", data.get("DEBUG", False)),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                RIDE_SERVICE_HOST=os.getenv("RIDE_SERVICE_HOST", data.get("RIDE_SERVICE_HOST", "0.0.0.0")),
                RIDE_SERVICE_PORT=int(os.getenv("RIDE_SERVICE_PORT", data.get("RIDE_SERVICE_PORT", 8083))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "DEBUG")),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "ride_engine")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
                DB_CONNECT_ATTEMPTS=data.get("DB_CONNECT_ATTEMPTS", 3),
                DB_CONNECT_RETRY_DELAY=data.get("DB_CONNECT_RETRY_DELAY", 1.0),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_ENABLED=_env_bool("RABBITMQ_ENABLED", data.get("RABBITMQ_ENABLED", True)),
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=data.get("RABBITMQ_EXCHANGE", "ride.events"),
            ),
            rides=RideSettings(
                RIDES_DEFAULT_LIMIT=data.get("RIDES_DEFAULT_LIMIT", 20),
                RIDES_MAX_LIMIT=data.get("RIDES_MAX_LIMIT", 100),
            ),
        )

    @classmethod
    def from_config_json(cls) -> "Settings":
        """Создаёт Settings из config.json."""
        return cls.from_dict(load_config_json())


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением config.json подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
