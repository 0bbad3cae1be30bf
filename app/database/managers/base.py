"""
Базовый класс менеджеров портала.
Сессия, транзакции и журнал операций. Правила предметной области
живут в конкретных менеджерах.
"""

from typing import Any, Awaitable, Callable, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession

from app.utils.logging_config import get_logger

T = TypeVar('T')


class BaseManager:
    """Базовый класс менеджера"""

    # Общее сообщение пользователю при сбое сохранения
    RETRY_MESSAGE = "Une erreur est survenue. Veuillez réessayer."

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(f"{self.__class__.__name__}")

    async def _commit(self) -> None:
        try:
            await self.session.commit()
            self.logger.debug("Изменения зафиксированы")
        except Exception as e:
            self.logger.error(f"Ошибка при коммите: {e}", exc_info=True)
            await self._rollback()
            raise

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
            self.logger.debug("Изменения откачены")
        except Exception as e:
            self.logger.error(f"Ошибка при откате: {e}", exc_info=True)
            raise

    async def _refresh(self, entity: Any) -> None:
        """Перечитать объект из БД. Ошибка только логируется"""
        try:
            await self.session.refresh(entity)
        except Exception as e:
            self.logger.error(f"Ошибка обновления объекта {type(entity).__name__}: {e}", exc_info=True)

    async def _execute_in_transaction(self, operation: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Выполнить операцию одной транзакцией: commit при успехе,
        rollback и проброс ошибки при любом сбое
        """
        try:
            result = await operation(*args, **kwargs)
            await self._commit()
            return result
        except Exception as e:
            await self._rollback()
            self.logger.error(f"Ошибка в транзакции {operation.__name__}: {e}", exc_info=True)
            raise

    async def _refetch(self, loader: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Перечитать коллекцию после записи.
        Экран всегда показывает состояние БД, а не локальную копию.
        """
        result = await loader(*args, **kwargs)
        self.logger.debug(f"Коллекция перечитана: {loader.__name__}")
        return result

    def _log_operation_start(self, operation_name: str, **context) -> None:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        self.logger.info(f"Начало операции '{operation_name}': {context_str}")

    def _log_operation_end(self, operation_name: str, success: bool = True, **result) -> None:
        status = "успешно" if success else "с ошибкой"
        result_str = f", результат: {result}" if result else ""
        self.logger.info(f"Операция '{operation_name}' завершена {status}{result_str}")

    def _log_business_event(self, event_type: str, **details) -> None:
        details_str = ", ".join(f"{k}={v}" for k, v in details.items())
        self.logger.info(f"Бизнес-событие '{event_type}': {details_str}")
