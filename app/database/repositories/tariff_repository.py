"""Репозиторий условий местного тарифа и школ"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import School, TariffCondition


class TariffConditionRepository(BaseRepository):
    """Условия тарифов"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, condition_id: int) -> Optional[TariffCondition]:
        """
        Условие по id.

        Ошибка БД пробрасывается: решение о местном тарифе
        принимает вызывающий код (отказ при любой ошибке).
        """
        result = await self._execute_query(
            select(TariffCondition).where(TariffCondition.id == condition_id)
        )
        return result.scalar_one_or_none()

    async def create(self, **data) -> TariffCondition:
        return await self._create(TariffCondition, **data)


class SchoolRepository(BaseRepository):
    """Справочник школ"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, school_id: int) -> Optional[School]:
        return await self._get_one(School, School.id == school_id)

    async def get_active(self) -> List[School]:
        return await self._get_many(School, School.is_active.is_(True), order_by=School.name)
