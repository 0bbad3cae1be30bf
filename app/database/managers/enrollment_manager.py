"""
Менеджер листа ожидания и запросов на инклюзию.
"""

from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from ..repositories.activity_repository import ActivityRepository
from ..repositories.enrollment_repository import InclusionRequestRepository, WaitingListRepository
from ..repositories.kid_repository import KidRepository
from ..models import (
    InclusionRequest, InclusionRequestStatus, WaitingListEntry, WaitingListStatus
)

from app.schemas.kid import InclusionSection


class EnrollmentManager(BaseManager):
    """Лист ожидания и инклюзия"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.activity_repo = ActivityRepository(session)
        self.kid_repo = KidRepository(session)
        self.waiting_repo = WaitingListRepository(session)
        self.inclusion_repo = InclusionRequestRepository(session)

    # ===== Лист ожидания =====

    async def is_on_waiting_list(self, activity_session_id: int, kid_id: int) -> bool:
        return await self.waiting_repo.is_on_waiting_list(activity_session_id, kid_id)

    async def join_waiting_list(
        self,
        user_id: int,
        kid_id: int,
        activity_session_id: int
    ) -> Tuple[List[WaitingListEntry], Optional[str]]:
        """
        Записаться в лист ожидания полной сессии

        Returns:
            (актуальный лист ожидания родителя, сообщение об ошибке)
        """
        kid = await self.kid_repo.get_for_user(kid_id, user_id, with_sections=False)
        activity = await self.activity_repo.get_by_id(activity_session_id)
        if kid is None or activity is None:
            return await self.waiting_repo.list_for_user(user_id), "Stage ou enfant introuvable"
        if not activity.is_full:
            return await self.waiting_repo.list_for_user(user_id), "Des places sont disponibles, ajoutez le stage au panier"

        kid_name = kid.full_name

        try:
            entry = await self.waiting_repo.get_entry(activity_session_id, kid_id)
            if entry is None:
                await self.waiting_repo.create(
                    activity_session_id=activity_session_id,
                    kid_id=kid_id,
                    user_id=user_id,
                    status=WaitingListStatus.waiting,
                )
            elif entry.status == WaitingListStatus.cancelled:
                await self.waiting_repo.set_status(entry.id, WaitingListStatus.waiting)
            else:
                return await self.waiting_repo.list_for_user(user_id), f"{kid_name} est déjà sur la liste d'attente"
        except IntegrityError:
            return await self.waiting_repo.list_for_user(user_id), f"{kid_name} est déjà sur la liste d'attente"
        except Exception as e:
            self.logger.error(f"Ошибка записи в лист ожидания: {e}", exc_info=True)
            return await self.waiting_repo.list_for_user(user_id), self.RETRY_MESSAGE

        self._log_business_event("waiting_list_joined", user_id=user_id, kid_id=kid_id, session_id=activity_session_id)
        return await self._refetch(self.waiting_repo.list_for_user, user_id), None

    async def cancel_waiting_list(
        self,
        user_id: int,
        kid_id: int,
        activity_session_id: int
    ) -> Tuple[List[WaitingListEntry], Optional[str]]:
        entry = await self.waiting_repo.get_entry(activity_session_id, kid_id)
        if (
            entry is None
            or entry.user_id != user_id
            or not await self.is_on_waiting_list(activity_session_id, kid_id)
        ):
            return await self.waiting_repo.list_for_user(user_id), "Inscription en liste d'attente introuvable"

        try:
            await self.waiting_repo.set_status(entry.id, WaitingListStatus.cancelled)
        except Exception as e:
            self.logger.error(f"Ошибка отмены листа ожидания {entry.id}: {e}", exc_info=True)
            return await self.waiting_repo.list_for_user(user_id), self.RETRY_MESSAGE

        self._log_business_event("waiting_list_cancelled", user_id=user_id, entry_id=entry.id)
        return await self._refetch(self.waiting_repo.list_for_user, user_id), None

    # ===== Инклюзия =====

    async def request_inclusion(
        self,
        user_id: int,
        kid_id: int,
        activity_session_id: int
    ) -> Tuple[Optional[InclusionRequest], Optional[str]]:
        """
        Запрос на инклюзию по разделу анкеты ребенка

        Returns:
            (запрос, сообщение об ошибке)
        """
        kid = await self.kid_repo.get_for_user(kid_id, user_id)
        if kid is None:
            return None, "Enfant introuvable"
        if not kid.has_inclusion_needs:
            return None, "Aucun besoin spécifique n'est déclaré pour cet enfant"

        existing = await self.inclusion_repo.get_open_request(activity_session_id, kid_id)
        if existing is not None:
            return existing, "Une demande d'inclusion est déjà en cours pour ce stage"

        details = {
            name: getattr(kid.inclusion, name)
            for name in ('has_needs',) + InclusionSection.DETAIL_FIELDS
        }
        try:
            request = await self.inclusion_repo.create(
                activity_session_id=activity_session_id,
                kid_id=kid_id,
                user_id=user_id,
                status=InclusionRequestStatus.pending,
                details=details,
            )
        except Exception as e:
            self.logger.error(f"Ошибка создания запроса на инклюзию: {e}", exc_info=True)
            return None, self.RETRY_MESSAGE

        self._log_business_event("inclusion_requested", user_id=user_id, kid_id=kid_id, session_id=activity_session_id)
        return request, None
