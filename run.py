import asyncio

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from app.config import settings
from app.routers import setup_routers
from app.database.models import init_models
from app.integrations.payment_gateway import PaymentGateway
from app.integrations.storage import StorageClient
from app.utils.logging_config import setup_logging

logger = setup_logging(
    level=settings.LOG_LEVEL,
    console=settings.ENABLE_CONSOLE_LOGGING,
    file_logging=settings.ENABLE_FILE_LOGGING,
    log_dir=settings.LOG_DIR,
    max_size_mb=settings.ROTATION_MAX_SIZE_MB,
    backup_count=settings.ROTATION_BACKUP_COUNT
)

# Создание бота
bot = Bot(
    token=settings.TG_TOKEN,
    default=DefaultBotProperties(parse_mode=ParseMode.HTML)
)

dp = Dispatcher(storage=MemoryStorage())


async def main():
    logger.info("Запуск бота...")

    # Внешние сервисы доступны обработчикам как photo_storage и payment_gateway
    dp['photo_storage'] = StorageClient() if settings.storage_enabled else None
    dp['payment_gateway'] = PaymentGateway() if settings.payment_enabled else None
    if dp['photo_storage'] is None:
        logger.warning("Хранилище фото не настроено: фото детей не будут сохраняться")
    if dp['payment_gateway'] is None:
        logger.warning("Сервис оплаты не настроен: доступна только оплата по счету")

    logger.debug("Настройка роутеров...")
    setup_routers(dp)

    dp.startup.register(startup)
    dp.shutdown.register(shutdown)

    logger.debug("Запуск polling...")
    await dp.start_polling(bot)


async def startup(dispatcher: Dispatcher):
    """Обработчик запуска бота"""
    logger.info("Инициализация базы данных...")
    try:
        await init_models()
        logger.info("База данных инициализирована")
    except Exception as e:
        logger.error(f"Ошибка инициализации базы данных: {e}", exc_info=True)
        raise

    logger.info('Бот запущен!')


async def shutdown(dispatcher: Dispatcher):
    """Обработчик остановки бота"""
    logger.info('Бот останавливается...')
    logger.info("Закрытие соединений...")
    for name in ('photo_storage', 'payment_gateway'):
        client = dispatcher.workflow_data.get(name)
        if client is not None:
            await client.close()
    logger.info('Бот остановлен.')


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Получен сигнал KeyboardInterrupt")
    except Exception as e:
        logger.critical(f"Критическая ошибка: {e}", exc_info=True)
    finally:
        logger.info("Приложение завершило работу")
