"""Репозиторий листа ожидания и запросов на инклюзию"""

from typing import List, Optional
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import (
    ActivitySession, InclusionRequest, InclusionRequestStatus,
    WaitingListEntry, WaitingListStatus
)

ACTIVE_WAITING_STATUSES = (WaitingListStatus.waiting, WaitingListStatus.invited)


class WaitingListRepository(BaseRepository):
    """Лист ожидания полных сессий"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_entry(self, activity_session_id: int, kid_id: int) -> Optional[WaitingListEntry]:
        return await self._get_one(
            WaitingListEntry,
            WaitingListEntry.activity_session_id == activity_session_id,
            WaitingListEntry.kid_id == kid_id,
        )

    async def is_on_waiting_list(self, activity_session_id: int, kid_id: int) -> bool:
        return await self._exists(
            WaitingListEntry,
            WaitingListEntry.activity_session_id == activity_session_id,
            WaitingListEntry.kid_id == kid_id,
            WaitingListEntry.status.in_(ACTIVE_WAITING_STATUSES),
        )

    async def get_waiting_session_ids(self, kid_id: int) -> List[int]:
        entries = await self._get_many(
            WaitingListEntry,
            WaitingListEntry.kid_id == kid_id,
            WaitingListEntry.status.in_(ACTIVE_WAITING_STATUSES),
        )
        return [entry.activity_session_id for entry in entries]

    async def list_for_user(self, user_id: int) -> List[WaitingListEntry]:
        return await self._get_many(
            WaitingListEntry,
            WaitingListEntry.user_id == user_id,
            WaitingListEntry.status.in_(ACTIVE_WAITING_STATUSES),
            order_by=WaitingListEntry.created_at,
            options=(
                selectinload(WaitingListEntry.kid),
                selectinload(WaitingListEntry.activity_session).selectinload(ActivitySession.stage),
            ),
        )

    async def create(self, **data) -> WaitingListEntry:
        return await self._create(WaitingListEntry, **data)

    async def set_status(self, entry_id: int, status: WaitingListStatus) -> bool:
        updated_count = await self._update(WaitingListEntry, WaitingListEntry.id == entry_id, status=status)
        return updated_count > 0


class InclusionRequestRepository(BaseRepository):
    """Запросы на инклюзию"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_open_request(self, activity_session_id: int, kid_id: int) -> Optional[InclusionRequest]:
        """Незакрытый запрос (ожидает решения или одобрен)"""
        return await self._get_one(
            InclusionRequest,
            InclusionRequest.activity_session_id == activity_session_id,
            InclusionRequest.kid_id == kid_id,
            InclusionRequest.status.in_((InclusionRequestStatus.pending, InclusionRequestStatus.approved)),
        )

    async def get_requested_session_ids(self, kid_id: int) -> List[int]:
        requests = await self._get_many(
            InclusionRequest,
            InclusionRequest.kid_id == kid_id,
            InclusionRequest.status.in_((InclusionRequestStatus.pending, InclusionRequestStatus.approved)),
        )
        return [request.activity_session_id for request in requests]

    async def create(self, **data) -> InclusionRequest:
        return await self._create(InclusionRequest, **data)
