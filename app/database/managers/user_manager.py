"""
Менеджер профиля родителя и доверенных лиц.
"""

from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from ..repositories.user_repository import UserRepository
from ..repositories.authorized_person_repository import AuthorizedPersonRepository
from ..models import AuthorizedPerson, User

from app.schemas.user import AuthorizedPersonData, ParentProfileData, PROFILE_FIELD_VALIDATORS


class UserManager(BaseManager):
    """Профиль родителя"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.person_repo = AuthorizedPersonRepository(session)

    async def get_or_create(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None
    ) -> User:
        """Родитель по telegram_id. Новый аккаунт создается с пустым профилем"""
        user = await self.user_repo.get_by_telegram_id(telegram_id)
        if user:
            return user

        self._log_operation_start("get_or_create", telegram_id=telegram_id)
        user = await self.user_repo.create(
            telegram_id=telegram_id,
            first_name=first_name,
            last_name=last_name,
        )
        self._log_business_event("parent_account_created", user_id=user.id, telegram_id=telegram_id)
        return user

    async def save_profile(self, user_id: int, profile: ParentProfileData) -> Tuple[Optional[User], Optional[str]]:
        """
        Сохранить профиль целиком

        Returns:
            (обновленный родитель, сообщение об ошибке)
        """
        self._log_operation_start("save_profile", user_id=user_id)
        try:
            await self.user_repo.update(user_id, **profile.model_dump())
            user = await self._refetch(self.user_repo.get_by_id, user_id)
            self._log_operation_end("save_profile", success=True)
            return user, None
        except Exception as e:
            self.logger.error(f"Ошибка сохранения профиля {user_id}: {e}", exc_info=True)
            self._log_operation_end("save_profile", success=False)
            return None, self.RETRY_MESSAGE

    async def update_field(self, user_id: int, field: str, value: str) -> Tuple[Optional[User], Optional[str]]:
        """
        Изменить одно поле профиля с проверкой значения

        Returns:
            (обновленный родитель, сообщение об ошибке проверки или сохранения)
        """
        if field not in PROFILE_FIELD_VALIDATORS:
            raise KeyError(f"Неизвестное поле профиля: {field}")

        try:
            new_value = PROFILE_FIELD_VALIDATORS[field](value)
        except ValueError as e:
            return None, str(e)

        try:
            await self.user_repo.update(user_id, **{field: new_value})
            user = await self._refetch(self.user_repo.get_by_id, user_id)
            self._log_business_event("profile_field_updated", user_id=user_id, field=field)
            return user, None
        except Exception as e:
            self.logger.error(f"Ошибка изменения поля {field} пользователя {user_id}: {e}", exc_info=True)
            return None, self.RETRY_MESSAGE

    # ===== Доверенные лица =====

    async def list_authorized_persons(self, user_id: int) -> List[AuthorizedPerson]:
        return await self.person_repo.list_for_user(user_id)

    async def add_authorized_person(
        self,
        user_id: int,
        data: AuthorizedPersonData
    ) -> Tuple[List[AuthorizedPerson], Optional[str]]:
        """
        Добавить доверенное лицо

        Returns:
            (актуальный список из БД, сообщение об ошибке)
        """
        try:
            person = await self.person_repo.create(user_id=user_id, **data.model_dump())
            self._log_business_event("authorized_person_added", user_id=user_id, person_id=person.id)
        except Exception as e:
            self.logger.error(f"Ошибка добавления доверенного лица: {e}", exc_info=True)
            return await self.person_repo.list_for_user(user_id), self.RETRY_MESSAGE

        return await self._refetch(self.person_repo.list_for_user, user_id), None

    async def delete_authorized_person(
        self,
        user_id: int,
        person_id: int
    ) -> Tuple[List[AuthorizedPerson], Optional[str]]:
        try:
            deleted = await self.person_repo.delete(person_id, user_id)
        except Exception as e:
            self.logger.error(f"Ошибка удаления доверенного лица {person_id}: {e}", exc_info=True)
            return await self.person_repo.list_for_user(user_id), self.RETRY_MESSAGE

        if not deleted:
            return await self.person_repo.list_for_user(user_id), "Personne introuvable"

        self._log_business_event("authorized_person_deleted", user_id=user_id, person_id=person_id)
        return await self._refetch(self.person_repo.list_for_user, user_id), None
