"""
Настройки логирования портала с разделением по файлам
"""

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler


# Логгеры со своими файлами: имя -> (файл, размер в МБ, описание)
SPECIAL_LOGGERS = {
    'app.database': ('database.log', 30, 'Логи базы данных'),
    'app.routers.user.checkout': ('payments.log', 30, 'Логи оформления и оплаты'),
    'app.routers.user': ('user_actions.log', 20, 'Логи действий родителей'),
}

NOISY_LOGGERS = {
    'aiosqlite': logging.WARNING,
    'sqlalchemy': logging.WARNING,
    'sqlalchemy.engine': logging.WARNING,
    'sqlalchemy.pool': logging.WARNING,
    'asyncio': logging.WARNING,
    'httpx': logging.WARNING,
    'httpcore': logging.WARNING,
    'aiohttp': logging.WARNING,
    'aiogram': logging.INFO,
    'aiogram.event': logging.WARNING,
    'aiogram.middlewares': logging.WARNING,
}


class ModuleFilter(logging.Filter):
    """Фильтр по имени модуля"""

    def __init__(self, module_prefix: str):
        super().__init__()
        self.module_prefix = module_prefix

    def filter(self, record):
        return record.name.startswith(self.module_prefix)


class LevelFilter(logging.Filter):
    """Фильтр по уровню логирования"""

    def __init__(self, min_level: int, max_level: int = None):
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record):
        if self.max_level:
            return self.min_level <= record.levelno <= self.max_level
        return record.levelno >= self.min_level


def setup_logging(
    level: str = "INFO",
    console: bool = True,
    file_logging: bool = True,
    log_dir: str = "logs",
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Настройка логирования с разделением по файлам

    Args:
        level: уровень логирования
        console: включить вывод в консоль
        file_logging: включить запись в файл
        log_dir: директория для логов
        max_size_mb: размер основного файла в МБ
        backup_count: количество бэкапов

    Returns:
        Логгер приложения
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)

    # Один главный логгер приложения
    app_logger = logging.getLogger("app")
    app_logger.setLevel(log_level)
    app_logger.propagate = False
    app_logger.handlers.clear()

    log_path = Path(log_dir)
    if file_logging:
        log_path.mkdir(exist_ok=True)

    def create_file_handler(filename, handler_level=log_level, max_mb=max_size_mb):
        """Создать ротируемый файловый обработчик"""
        handler = RotatingFileHandler(
            filename=log_path / filename,
            maxBytes=max_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        handler.name = f"file_{filename.split('.')[0]}"
        return handler

    console_handler = None
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        console_handler.name = "console"
        app_logger.addHandler(console_handler)

    error_handler = None
    if file_logging:
        app_logger.addHandler(create_file_handler("portal.log", log_level, max_size_mb))

        # Только ERROR и CRITICAL
        error_handler = create_file_handler("errors.log", logging.ERROR, 20)
        error_handler.addFilter(LevelFilter(logging.ERROR))
        app_logger.addHandler(error_handler)

        if log_level == logging.DEBUG:
            debug_handler = create_file_handler("debug.log", logging.DEBUG, 100)
            debug_handler.addFilter(LevelFilter(logging.DEBUG, logging.DEBUG))
            app_logger.addHandler(debug_handler)

    # Логгеры модулей с собственными файлами
    for name, (log_file, size_mb, _) in SPECIAL_LOGGERS.items():
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        module_logger.propagate = False
        module_logger.handlers.clear()

        if file_logging:
            module_handler = create_file_handler(log_file, log_level, size_mb)
            module_handler.addFilter(ModuleFilter(name))
            module_logger.addHandler(module_handler)
            module_logger.addHandler(error_handler)
        if console_handler:
            module_logger.addHandler(console_handler)

    for logger_name, logger_level in NOISY_LOGGERS.items():
        noisy_logger = logging.getLogger(logger_name)
        noisy_logger.setLevel(logger_level)

    app_logger.info("=" * 60)
    app_logger.info("НАСТРОЙКА ЛОГИРОВАНИЯ ЗАВЕРШЕНА")
    app_logger.info(f"Уровень логирования: {level}")
    app_logger.info(f"Консольный вывод: {'ВКЛ' if console else 'ВЫКЛ'}")
    app_logger.info(f"Файловое логирование: {'ВКЛ' if file_logging else 'ВЫКЛ'}")

    if file_logging:
        app_logger.info("Файлы логов:")
        for log_file, _, description in SPECIAL_LOGGERS.values():
            app_logger.info(f"  - {log_file}: {description}")
        app_logger.info("  - portal.log: Основные логи приложения")
        app_logger.info("  - errors.log: Ошибки")
        if log_level == logging.DEBUG:
            app_logger.info("  - debug.log: Отладочные логи")

    app_logger.info("=" * 60)

    return app_logger


def get_logger(name: str = None) -> logging.Logger:
    """
    Получить логгер для модуля

    Args:
        name: имя модуля (обычно __name__) или имя класса

    Returns:
        Логгер. Имена вне пакета app попадают в дерево логгера app
    """
    if not name:
        return logging.getLogger("app")

    if name == "app" or name.startswith("app."):
        return logging.getLogger(name)

    # Репозитории и менеджеры логируют под своим именем класса
    return logging.getLogger(f"app.database.{name}")


def cleanup_old_logs(log_dir: str = "logs", days_to_keep: int = 30):
    """
    Очистка старых ротированных логов

    Args:
        log_dir: директория с логами
        days_to_keep: сколько дней хранить логи
    """
    log_path = Path(log_dir)
    if not log_path.exists():
        return

    cutoff_date = datetime.now() - timedelta(days=days_to_keep)

    for log_file in log_path.glob("*.log.*"):
        try:
            file_date = datetime.fromtimestamp(log_file.stat().st_mtime)
            if file_date < cutoff_date:
                log_file.unlink()
                logging.getLogger("app").info(f"Удален старый лог: {log_file.name}")
        except OSError as e:
            logging.getLogger("app").warning(f"Ошибка при удалении {log_file}: {e}")


def get_payment_logger() -> logging.Logger:
    """Получить логгер для оформления и оплаты"""
    return logging.getLogger("app.routers.user.checkout")
