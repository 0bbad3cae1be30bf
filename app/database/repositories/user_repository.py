"""Репозиторий родителей (профиль аккаунта)"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import User


class UserRepository(BaseRepository):
    """CRUD операции с родителями"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        return await self._get_one(User, User.id == user_id)

    async def get_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        return await self._get_one(User, User.telegram_id == telegram_id)

    async def check_user_exists(self, telegram_id: int) -> bool:
        return await self._exists(User, User.telegram_id == telegram_id)

    async def create(self, **user_data) -> User:
        return await self._create(User, **user_data)

    async def update(self, user_id: int, **update_data) -> bool:
        """Обновить поля профиля. None значения пропускаются"""
        clean_data = {k: v for k, v in update_data.items() if v is not None}
        if not clean_data:
            self.logger.warning("Нет данных для обновления профиля")
            return False

        updated_count = await self._update(User, User.id == user_id, **clean_data)
        return updated_count > 0
