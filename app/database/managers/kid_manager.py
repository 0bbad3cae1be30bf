"""
Менеджер детей: сохранение анкеты одной транзакцией, архив, фото.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from ..repositories.kid_repository import KidRepository, SECTION_TABLES
from ..repositories.authorized_person_repository import AuthorizedPersonRepository
from ..models import Kid

from app.integrations.storage import StorageClient
from app.schemas.kid import SECTION_MODELS, PersonalSection
from app.utils.validation import validate_photo_mime

# Поля личного раздела, которые хранятся в таблице kids
KID_COLUMNS = (
    'last_name', 'first_name', 'birth_date', 'national_number', 'is_national_number_valid',
    'address', 'postal_code', 'locality', 'school_id', 'photo_consent',
)

# Раздел анкеты -> атрибут связи у Kid
SECTION_RELATIONS = {
    'health': 'health',
    'allergies': 'allergies',
    'activities': 'activity_profile',
    'departure': 'departure',
    'inclusion': 'inclusion',
}


class KidManager(BaseManager):
    """Дети родителя"""

    def __init__(self, session: AsyncSession, storage: Optional[StorageClient] = None):
        super().__init__(session)
        self.kid_repo = KidRepository(session)
        self.person_repo = AuthorizedPersonRepository(session)
        self.storage = storage

    async def list_kids(self, user_id: int) -> List[Kid]:
        return await self.kid_repo.list_for_user(user_id)

    async def get_kid(self, user_id: int, kid_id: int) -> Optional[Kid]:
        return await self.kid_repo.get_for_user(kid_id, user_id)

    async def save_intake(
        self,
        user_id: int,
        draft: Dict[str, Dict[str, Any]],
        kid_id: Optional[int] = None,
        photo: Optional[bytes] = None
    ) -> int:
        """
        Создать или обновить ребенка со всеми разделами анкеты.

        Все записи и загрузка фото выполняются одной транзакцией:
        при любой ошибке ничего не сохраняется и ошибка пробрасывается.
        Без хранилища фото пропускается, остальные данные сохраняются.

        Returns:
            id ребенка
        """
        self._log_operation_start("save_intake", user_id=user_id, kid_id=kid_id, with_photo=photo is not None)
        sections = {name: SECTION_MODELS[name].model_validate(raw) for name, raw in draft.items()}
        personal: PersonalSection = sections['personal']

        async def operation() -> int:
            kid_data = {field: getattr(personal, field) for field in KID_COLUMNS}

            if kid_id is None:
                kid = await self.kid_repo.add(user_id=user_id, **kid_data)
            else:
                kid = await self.kid_repo.get_for_user(kid_id, user_id, with_sections=False)
                if kid is None:
                    raise LookupError(f"Ребенок {kid_id} не найден у пользователя {user_id}")
                for field, value in kid_data.items():
                    setattr(kid, field, value)

            for name, section in sections.items():
                if name == 'personal':
                    continue
                data = section.model_dump()
                if name == 'departure':
                    data['pickup_person_ids'] = await self._own_person_ids(user_id, data['pickup_person_ids'])
                await self.kid_repo.upsert_section(name, kid.id, **data)

            if photo is not None and self.storage is not None:
                kid.photo_path = await self._upload_photo(kid.id, photo, personal.photo_mime)
            elif photo is not None:
                self.logger.warning(f"Хранилище фото не настроено, ребенок {kid.id} сохранен без фото")

            await self.session.flush()
            return kid.id

        try:
            saved_id = await self._execute_in_transaction(operation)
        except Exception:
            self._log_operation_end("save_intake", success=False)
            raise

        self._log_business_event("kid_intake_saved", user_id=user_id, kid_id=saved_id, new=kid_id is None)
        self._log_operation_end("save_intake", success=True, kid_id=saved_id)
        return saved_id

    async def _own_person_ids(self, user_id: int, person_ids: List[int]) -> List[int]:
        """Оставить только доверенных лиц этого родителя"""
        own = {person.id for person in await self.person_repo.list_for_user(user_id)}
        foreign = [pid for pid in person_ids if pid not in own]
        if foreign:
            self.logger.warning(f"Чужие доверенные лица отброшены: {foreign}")
        return [pid for pid in person_ids if pid in own]

    async def _upload_photo(self, kid_id: int, photo: bytes, mime_type: Optional[str]) -> str:
        extension = validate_photo_mime(mime_type)
        path = f"{kid_id}.{extension}"
        return await self.storage.upload(path, photo, mime_type)

    async def archive(self, user_id: int, kid_id: int) -> Tuple[bool, Optional[str]]:
        """Скрыть ребенка из списков. Записи и история сохраняются"""
        kid = await self.kid_repo.get_for_user(kid_id, user_id, with_sections=False)
        if kid is None:
            return False, "Enfant introuvable"
        try:
            await self.kid_repo.archive(kid_id)
        except Exception as e:
            self.logger.error(f"Ошибка архивации ребенка {kid_id}: {e}", exc_info=True)
            return False, self.RETRY_MESSAGE

        self._log_business_event("kid_archived", user_id=user_id, kid_id=kid_id)
        return True, None

    async def get_photo_url(self, kid: Kid) -> Optional[str]:
        """Подписанная ссылка на фото. None без фото или при сбое хранилища"""
        if not kid.photo_path or self.storage is None:
            return None
        return await self.storage.create_signed_url(kid.photo_path)

    @staticmethod
    def draft_from_kid(kid: Kid) -> Dict[str, Dict[str, Any]]:
        """
        Анкета из сохраненного ребенка для режима редактирования.
        Разделы, не прошедшие текущую проверку, не включаются.
        """
        raw: Dict[str, Dict[str, Any]] = {
            'personal': {field: getattr(kid, field) for field in KID_COLUMNS}
        }
        for name, relation in SECTION_RELATIONS.items():
            record = getattr(kid, relation)
            if record is None:
                continue
            raw[name] = {
                attr.key: getattr(record, attr.key)
                for attr in inspect(SECTION_TABLES[name]).column_attrs
                if attr.key not in ('id', 'kid_id')
            }

        draft = {}
        for name, data in raw.items():
            try:
                draft[name] = SECTION_MODELS[name].model_validate(data).model_dump(mode='json')
            except ValueError:
                continue
        return draft
