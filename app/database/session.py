from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from app.config import settings
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class DatabaseConfig:
    """Конфигурация базы данных портала"""

    DB_URL = settings.DB_URL
    CONNECT_ARGS = {
        'check_same_thread': False,
        'timeout': 15,
    }

    # Настройки SQLite, применяются при инициализации
    PRAGMAS = [
        ("PRAGMA journal_mode=WAL", "WAL режим"),
        ("PRAGMA synchronous=NORMAL", "Баланс скорость/безопасность"),
        ("PRAGMA foreign_keys=ON", "Внешние ключи"),
        ("PRAGMA busy_timeout=5000", "Таймаут блокировки"),
    ]


engine = create_async_engine(
    url=DatabaseConfig.DB_URL,
    echo=False,  # True только для отладки SQL
    poolclass=NullPool,
    connect_args=DatabaseConfig.CONNECT_ARGS,
)


async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)
