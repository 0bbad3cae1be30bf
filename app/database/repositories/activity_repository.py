"""Репозиторий каталога: сессии стажей, центры, периоды и недели"""

from datetime import date
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import ActivitySession, Center, Stage

SESSION_OPTIONS = (
    selectinload(ActivitySession.stage),
    selectinload(ActivitySession.center),
    selectinload(ActivitySession.tariff_condition),
)


class ActivityRepository(BaseRepository):
    """Сессии стажей и справочники фильтров"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, session_id: int) -> Optional[ActivitySession]:
        """Сессия со стажем, центром и условием тарифа"""
        return await self._get_one(ActivitySession, ActivitySession.id == session_id, options=SESSION_OPTIONS)

    async def get_listing_candidates(
        self,
        today: date,
        center_id: Optional[int] = None
    ) -> List[ActivitySession]:
        """
        Незакончившиеся активные сессии для каталога.
        Остальные фильтры применяются в app.utils.listing.

        Raises:
            SQLAlchemyError: каталог должен сообщить пользователю об ошибке
        """
        query = (
            select(ActivitySession)
            .options(*SESSION_OPTIONS)
            .where(
                ActivitySession.is_active.is_(True),
                ActivitySession.end_date >= today,
            )
            .order_by(ActivitySession.start_date, ActivitySession.id)
        )
        if center_id is not None:
            query = query.where(ActivitySession.center_id == center_id)

        result = await self._execute_query(query)
        return list(result.scalars().all())

    async def get_centers(self) -> List[Center]:
        return await self._get_many(Center, Center.is_active.is_(True), order_by=Center.name)

    async def get_center(self, center_id: int) -> Optional[Center]:
        return await self._get_one(Center, Center.id == center_id)

    async def get_stage(self, stage_id: int) -> Optional[Stage]:
        return await self._get_one(Stage, Stage.id == stage_id)

    async def _distinct_values(self, column, today: date, center_id: Optional[int]) -> List[str]:
        query = (
            select(column)
            .where(
                column.is_not(None),
                ActivitySession.is_active.is_(True),
                ActivitySession.end_date >= today,
            )
            .distinct()
            .order_by(column)
        )
        if center_id is not None:
            query = query.where(ActivitySession.center_id == center_id)

        result = await self._execute_query(query)
        return [value for value in result.scalars().all() if value]

    async def get_periods(self, today: date, center_id: Optional[int] = None) -> List[str]:
        """Различные периоды актуальных сессий"""
        return await self._distinct_values(ActivitySession.period, today, center_id)

    async def get_weeks(self, today: date, center_id: Optional[int] = None) -> List[str]:
        """Различные недели актуальных сессий"""
        return await self._distinct_values(ActivitySession.week, today, center_id)

    async def increment_registrations(self, activity: ActivitySession, count: int = 1) -> None:
        """Увеличить число записей в текущей транзакции"""
        activity.current_registrations = (activity.current_registrations or 0) + count
        await self.session.flush()
        self.logger.debug(
            f"Сессия {activity.id}: записей {activity.current_registrations}/{activity.capacity}"
        )
