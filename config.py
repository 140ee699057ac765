"""
Конфигурация проекта
"""
import os
from dataclasses import dataclass
from typing import List


def _get_bool(name: str, default: bool = False) -> bool:
    """Чтение булевого флага из переменной окружения"""
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_number(name: str, default, cast=int):
    """Чтение числа из переменной окружения"""
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"Переменная окружения {name} должна быть числом: '{value}'")


@dataclass
class Settings:
    """Настройки приложения"""
    # Telegram
    BOT_TOKEN: str = os.getenv('BOT_TOKEN', '')
    ADMIN_IDS: List[int] = None

    # Режим получения сообщений: long polling или webhook
    USE_WEBHOOK: bool = _get_bool('USE_WEBHOOK')
    WEBHOOK_URL: str = os.getenv('WEBHOOK_URL', '')
    WEBHOOK_PATH: str = os.getenv('WEBHOOK_PATH', '/webhook')
    WEBHOOK_SECRET: str = os.getenv('WEBHOOK_SECRET', '')
    WEBHOOK_HOST: str = os.getenv('WEBHOOK_HOST', '0.0.0.0')
    WEBHOOK_PORT: int = _get_number('WEBHOOK_PORT', 443)
    SSL_CERTIFICATE: str = os.getenv('SSL_CERTIFICATE', '')
    SSL_PRIVATE_KEY: str = os.getenv('SSL_PRIVATE_KEY', '')
    DELETE_WEBHOOK: bool = _get_bool('DELETE_WEBHOOK')

    # База данных
    DB_PATH: str = os.getenv('DB_PATH', 'data/shuttle.db')

    # Источник расписаний
    DESTINATIONS_PATH: str = os.getenv('DESTINATIONS_PATH', 'destinations.json')
    SHUTTLE_ENDPOINT: str = os.getenv('SHUTTLE_ENDPOINT', 'https://m.uber.com/go/graphql')
    SHUTTLE_COOKIES: str = os.getenv('SHUTTLE_COOKIES', '')
    FETCH_TIMEOUT: float = _get_number('FETCH_TIMEOUT', 20.0, float)
    FETCH_ATTEMPTS: int = _get_number('FETCH_ATTEMPTS', 3)
    FETCH_RETRY_DELAY: float = _get_number('FETCH_RETRY_DELAY', 1.0, float)

    # Бизнес-правила
    HUB: str = 'Work'
    REFRESH_RATE_MINUTES: float = _get_number('REFRESH_RATE_MINUTES', 5.0, float)
    RETENTION_DAYS: int = _get_number('RETENTION_DAYS', 14)
    CLEANUP_INTERVAL_HOURS: int = _get_number('CLEANUP_INTERVAL_HOURS', 24)
    BLOCK_REMOVES_SUBSCRIPTIONS: bool = _get_bool('BLOCK_REMOVES_SUBSCRIPTIONS')

    # Логирование
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    def __post_init__(self):
        """Инициализация после создания объекта"""
        if not self.BOT_TOKEN:
            raise ValueError("BOT_TOKEN не установлен")

        # Парсинг ADMIN_IDS из переменной окружения
        if self.ADMIN_IDS is None:
            admin_ids_str = os.getenv('ADMIN_IDS', '')
            if admin_ids_str:
                self.ADMIN_IDS = [int(id.strip()) for id in admin_ids_str.split(',') if id.strip()]
            else:
                self.ADMIN_IDS = []

        if self.FETCH_ATTEMPTS < 1:
            raise ValueError("FETCH_ATTEMPTS должен быть не меньше 1")
        if self.REFRESH_RATE_MINUTES <= 0:
            raise ValueError("REFRESH_RATE_MINUTES должен быть больше 0")
        if self.USE_WEBHOOK and not self.WEBHOOK_URL:
            raise ValueError("Для режима webhook необходимо указать WEBHOOK_URL")


# Глобальный экземпляр настроек
settings = Settings()
