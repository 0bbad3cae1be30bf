"""
Настройки приложения из переменных окружения (.env)
"""

import os

from dotenv import load_dotenv

# .env не перезаписывает уже заданные переменные окружения
load_dotenv(".env", override=False)


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Settings:
    """Конфигурация портала"""

    def __init__(self):
        # Telegram
        self.TG_TOKEN = os.getenv('TG_TOKEN', '')

        # База данных
        self.DB_URL = os.getenv('DB_URL', 'sqlite+aiosqlite:///database.db')

        # Логирование
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.ENABLE_CONSOLE_LOGGING = _get_bool('ENABLE_CONSOLE_LOGGING', True)
        self.ENABLE_FILE_LOGGING = _get_bool('ENABLE_FILE_LOGGING', True)
        self.LOG_DIR = os.getenv('LOG_DIR', 'logs')
        self.ROTATION_MAX_SIZE_MB = _get_int('ROTATION_MAX_SIZE_MB', 10)
        self.ROTATION_BACKUP_COUNT = _get_int('ROTATION_BACKUP_COUNT', 5)

        # Хранилище фотографий
        self.STORAGE_URL = os.getenv('STORAGE_URL', '')
        self.STORAGE_KEY = os.getenv('STORAGE_KEY', '')
        self.PHOTO_BUCKET = os.getenv('PHOTO_BUCKET', 'kid-photos')
        self.SIGNED_URL_TTL = _get_int('SIGNED_URL_TTL', 3600)

        # Оплата
        self.PAYMENT_CHECKOUT_URL = os.getenv('PAYMENT_CHECKOUT_URL', '')
        self.PAYMENT_API_KEY = os.getenv('PAYMENT_API_KEY', '')
        self.PORTAL_URL = os.getenv('PORTAL_URL', 'https://example.org')

        # Бизнес-настройки
        self.INVOICE_DUE_DAYS = _get_int('INVOICE_DUE_DAYS', 20)
        self.POPULAR_LIMIT = _get_int('POPULAR_LIMIT', 4)
        self.LISTING_PAGE_SIZE = _get_int('LISTING_PAGE_SIZE', 5)

    @property
    def storage_enabled(self) -> bool:
        return bool(self.STORAGE_URL and self.STORAGE_KEY)

    @property
    def payment_enabled(self) -> bool:
        return bool(self.PAYMENT_CHECKOUT_URL)


settings = Settings()
