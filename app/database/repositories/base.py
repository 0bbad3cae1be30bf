"""
Общий слой доступа к данным портала.
Простые выборки логируют ошибку и возвращают пустой результат,
запросы каталога и все записи в БД пробрасывают ошибку вызывающему.
"""

from typing import Type, TypeVar, Any, Optional, List, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError

from app.utils.logging_config import get_logger

Model = TypeVar('Model')


class BaseRepository:
    """Базовый репозиторий одного агрегата"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(f"{self.__class__.__name__}")

    async def _get_one(
        self,
        model_class: Type[Model],
        *conditions: Any,
        options: Sequence[Any] = ()
    ) -> Optional[Model]:
        """
        Одна запись по условиям

        Args:
            model_class: модель
            *conditions: условия (Kid.id == 5, ...)
            options: опции загрузки связей (selectinload(...))

        Returns:
            Запись или None (в том числе при ошибке БД)
        """
        try:
            query = select(model_class)
            if conditions:
                query = query.where(*conditions)
            if options:
                query = query.options(*options)

            self.logger.debug(f"Поиск {model_class.__name__}: {conditions}")
            result = await self.session.execute(query)
            entity = result.scalar_one_or_none()

            if entity is None:
                self.logger.debug(f"{model_class.__name__} не найден: {conditions}")
            return entity

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка поиска {model_class.__name__}: {e}", exc_info=True)
            return None

    async def _get_many(
        self,
        model_class: Type[Model],
        *conditions: Any,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        options: Sequence[Any] = ()
    ) -> List[Model]:
        """Список записей по условиям. При ошибке БД пустой список"""
        try:
            query = select(model_class)
            if conditions:
                query = query.where(*conditions)
            if options:
                query = query.options(*options)
            if order_by is not None:
                query = query.order_by(order_by)
            if limit:
                query = query.limit(limit)

            result = await self.session.execute(query)
            entities = list(result.scalars().all())

            self.logger.debug(f"Найдено {model_class.__name__}: {len(entities)}")
            return entities

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка выборки {model_class.__name__}: {e}", exc_info=True)
            return []

    async def _execute_query(self, query: Any) -> Any:
        """Произвольный запрос. Ошибка БД пробрасывается"""
        try:
            self.logger.debug(f"Запрос: {str(query)[:100]}...")
            return await self.session.execute(query)

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка выполнения запроса: {e}", exc_info=True)
            raise

    async def _add(self, model_class: Type[Model], **data: Any) -> Model:
        """
        Добавить запись в текущую транзакцию без commit.
        После flush у записи есть id.
        """
        try:
            entity = model_class(**data)
            self.session.add(entity)
            await self.session.flush()

            self.logger.debug(f"{model_class.__name__} добавлен в транзакцию: ID={entity.id}")
            return entity

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка добавления {model_class.__name__}: {e}", exc_info=True)
            raise

    async def _create(self, model_class: Type[Model], **data: Any) -> Model:
        """
        Создать запись и зафиксировать

        Raises:
            SQLAlchemyError: после отката транзакции
        """
        try:
            self.logger.info(f"Создание {model_class.__name__}: {list(data.keys())}")

            entity = model_class(**data)
            self.session.add(entity)
            await self.session.commit()
            await self.session.refresh(entity)

            self.logger.info(f"{model_class.__name__} создан: ID={entity.id}")
            return entity

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка создания {model_class.__name__}: {e}", exc_info=True)
            await self.session.rollback()
            raise

    async def _upsert(
        self,
        model_class: Type[Model],
        *conditions: Any,
        **data: Any
    ) -> Model:
        """
        Обновить найденную по условиям запись или добавить новую.
        Работает в текущей транзакции (flush без commit).
        """
        try:
            result = await self.session.execute(select(model_class).where(*conditions))
            entity = result.scalar_one_or_none()

            if entity is None:
                entity = model_class(**data)
                self.session.add(entity)
                action = "добавлен"
            else:
                for field, value in data.items():
                    setattr(entity, field, value)
                action = "обновлен"

            await self.session.flush()
            self.logger.debug(f"{model_class.__name__} {action}: ID={entity.id}")
            return entity

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка сохранения {model_class.__name__}: {e}", exc_info=True)
            raise

    async def _update(
        self,
        model_class: Type[Model],
        *conditions: Any,
        **data: Any
    ) -> int:
        """
        Обновить записи по условиям и зафиксировать

        Returns:
            Количество обновленных записей
        """
        if not data:
            self.logger.warning("Нет данных для обновления")
            return 0

        try:
            stmt = update(model_class).where(*conditions).values(**data)
            self.logger.info(f"Обновление {model_class.__name__}: {conditions}, поля {list(data.keys())}")

            result = await self.session.execute(stmt)
            await self.session.commit()

            self.logger.info(f"Обновлено {model_class.__name__}: {result.rowcount}")
            return result.rowcount

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка обновления {model_class.__name__}: {e}", exc_info=True)
            await self.session.rollback()
            raise

    async def _delete(self, model_class: Type[Model], *conditions: Any) -> int:
        """Удалить записи по условиям и зафиксировать"""
        try:
            stmt = delete(model_class).where(*conditions)
            self.logger.info(f"Удаление {model_class.__name__}: {conditions}")

            result = await self.session.execute(stmt)
            await self.session.commit()

            self.logger.info(f"Удалено {model_class.__name__}: {result.rowcount}")
            return result.rowcount

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка удаления {model_class.__name__}: {e}", exc_info=True)
            await self.session.rollback()
            raise

    async def _exists(self, model_class: Type[Model], *conditions: Any) -> bool:
        try:
            query = select(1).select_from(model_class).where(*conditions).limit(1)
            result = await self.session.execute(query)
            return result.first() is not None

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка проверки {model_class.__name__}: {e}", exc_info=True)
            return False

    async def _count(self, model_class: Type[Model], *conditions: Any) -> int:
        try:
            query = select(func.count()).select_from(model_class)
            if conditions:
                query = query.where(*conditions)
            result = await self.session.execute(query)
            return result.scalar() or 0

        except SQLAlchemyError as e:
            self.logger.error(f"Ошибка подсчета {model_class.__name__}: {e}", exc_info=True)
            return 0
