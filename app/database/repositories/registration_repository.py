"""Репозиторий записей на сессии и счетов"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from app.database.models import (
    ActivitySession, Invoice, InvoiceStatus, PaymentStatus, Registration
)


class RegistrationRepository(BaseRepository):
    """Записи детей на сессии"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def is_kid_registered(self, kid_id: int, activity_session_id: int) -> bool:
        """Есть ли неотмененная запись ребенка на сессию"""
        return await self._exists(
            Registration,
            Registration.kid_id == kid_id,
            Registration.activity_session_id == activity_session_id,
            Registration.payment_status != PaymentStatus.cancelled,
        )

    async def get_registered_session_ids(self, kid_id: int) -> List[int]:
        """Сессии, на которые ребенок уже записан"""
        result = await self._execute_query(
            select(Registration.activity_session_id).where(
                Registration.kid_id == kid_id,
                Registration.payment_status != PaymentStatus.cancelled,
            )
        )
        return list(result.scalars().all())

    async def add(self, **data) -> Registration:
        return await self._add(Registration, **data)

    async def list_for_user(self, user_id: int) -> List[Registration]:
        """Записи родителя с сессией, стажем, центром и ребенком"""
        query = (
            select(Registration)
            .options(
                selectinload(Registration.kid),
                selectinload(Registration.invoice),
                selectinload(Registration.activity_session).selectinload(ActivitySession.stage),
                selectinload(Registration.activity_session).selectinload(ActivitySession.center),
            )
            .where(Registration.user_id == user_id)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
        )
        result = await self._execute_query(query)
        return list(result.scalars().all())

    async def set_checkout_session(self, registration_ids: List[int], checkout_session_id: str) -> int:
        if not registration_ids:
            return 0
        return await self._update(
            Registration,
            Registration.id.in_(registration_ids),
            checkout_session_id=checkout_session_id,
        )


class InvoiceRepository(BaseRepository):
    """Счета на отложенную оплату"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return await self._get_one(Invoice, Invoice.id == invoice_id)

    async def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        return await self._get_one(Invoice, Invoice.invoice_number == invoice_number)

    async def number_exists(self, invoice_number: str) -> bool:
        return await self._exists(Invoice, Invoice.invoice_number == invoice_number)

    async def add(self, **data) -> Invoice:
        return await self._add(Invoice, **data)

    async def list_for_user(self, user_id: int) -> List[Invoice]:
        return await self._get_many(Invoice, Invoice.user_id == user_id, order_by=Invoice.due_date)

    async def list_pending_for_user(self, user_id: int) -> List[Invoice]:
        return await self._get_many(
            Invoice,
            Invoice.user_id == user_id,
            Invoice.status == InvoiceStatus.pending,
            order_by=Invoice.due_date,
        )
