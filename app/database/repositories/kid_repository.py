"""Репозиторий детей и разделов анкеты"""

from typing import Any, Dict, List, Optional, Type
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import (
    Kid, KidHealth, KidAllergies, KidActivities, KidDeparture, KidInclusion
)


# Раздел анкеты -> модель таблицы раздела
SECTION_TABLES: Dict[str, Type[Any]] = {
    'health': KidHealth,
    'allergies': KidAllergies,
    'activities': KidActivities,
    'departure': KidDeparture,
    'inclusion': KidInclusion,
}

KID_SECTIONS_OPTIONS = (
    selectinload(Kid.health),
    selectinload(Kid.allergies),
    selectinload(Kid.activity_profile),
    selectinload(Kid.departure),
    selectinload(Kid.inclusion),
)


class KidRepository(BaseRepository):
    """Дети родителя. Физически не удаляются, только архивируются"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, kid_id: int, with_sections: bool = False) -> Optional[Kid]:
        options = KID_SECTIONS_OPTIONS if with_sections else ()
        return await self._get_one(Kid, Kid.id == kid_id, options=options)

    async def get_for_user(self, kid_id: int, user_id: int, with_sections: bool = True) -> Optional[Kid]:
        """Ребенок, только если принадлежит родителю"""
        options = KID_SECTIONS_OPTIONS if with_sections else ()
        return await self._get_one(Kid, Kid.id == kid_id, Kid.user_id == user_id, options=options)

    async def list_for_user(self, user_id: int, include_archived: bool = False) -> List[Kid]:
        conditions = [Kid.user_id == user_id]
        if not include_archived:
            conditions.append(Kid.is_archived.is_(False))
        return await self._get_many(Kid, *conditions, order_by=Kid.first_name, options=KID_SECTIONS_OPTIONS)

    async def add(self, **kid_data) -> Kid:
        """Новый ребенок в текущей транзакции"""
        return await self._add(Kid, **kid_data)

    async def upsert_section(self, section: str, kid_id: int, **data) -> Any:
        """Создать или обновить раздел анкеты (kid_id уникален в таблице раздела)"""
        model = SECTION_TABLES[section]
        return await self._upsert(model, model.kid_id == kid_id, kid_id=kid_id, **data)

    async def archive(self, kid_id: int) -> bool:
        updated_count = await self._update(Kid, Kid.id == kid_id, is_archived=True)
        return updated_count > 0

    async def set_photo_path(self, kid_id: int, photo_path: Optional[str]) -> bool:
        updated_count = await self._update(Kid, Kid.id == kid_id, photo_path=photo_path)
        return updated_count > 0
