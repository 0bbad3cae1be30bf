"""Репозиторий доверенных лиц"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import AuthorizedPerson


class AuthorizedPersonRepository(BaseRepository):
    """Доверенные лица родителя"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, person_id: int) -> Optional[AuthorizedPerson]:
        return await self._get_one(AuthorizedPerson, AuthorizedPerson.id == person_id)

    async def list_for_user(self, user_id: int) -> List[AuthorizedPerson]:
        return await self._get_many(
            AuthorizedPerson,
            AuthorizedPerson.user_id == user_id,
            order_by=AuthorizedPerson.first_name,
        )

    async def create(self, **data) -> AuthorizedPerson:
        return await self._create(AuthorizedPerson, **data)

    async def delete(self, person_id: int, user_id: int) -> bool:
        """Удалить, только если лицо принадлежит родителю"""
        deleted_count = await self._delete(
            AuthorizedPerson,
            AuthorizedPerson.id == person_id,
            AuthorizedPerson.user_id == user_id,
        )
        return deleted_count > 0
