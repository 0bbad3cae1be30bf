"""
Единица работы: одна сессия, репозитории портала поверх нее и
фиксация или откат при выходе из блока.
"""

from typing import Any
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.repositories import (
    UserRepository, KidRepository, ActivityRepository, TariffConditionRepository,
    SchoolRepository, RegistrationRepository, InvoiceRepository,
    WaitingListRepository, InclusionRequestRepository, AuthorizedPersonRepository
)


class UnitOfWork:
    """
    Использование:
        async with UnitOfWork(async_session()) as uow:
            user = await uow.users.get_by_telegram_id(telegram_id)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._is_committed = False
        self._is_rolled_back = False

        self.users = UserRepository(session)
        self.kids = KidRepository(session)
        self.activities = ActivityRepository(session)
        self.tariff_conditions = TariffConditionRepository(session)
        self.schools = SchoolRepository(session)
        self.registrations = RegistrationRepository(session)
        self.invoices = InvoiceRepository(session)
        self.waiting_list = WaitingListRepository(session)
        self.inclusion_requests = InclusionRequestRepository(session)
        self.authorized_persons = AuthorizedPersonRepository(session)

    @property
    def is_active(self) -> bool:
        return not (self._is_committed or self._is_rolled_back)

    async def commit(self) -> None:
        if self._is_committed:
            raise RuntimeError("Транзакция уже зафиксирована")
        if self._is_rolled_back:
            raise RuntimeError("Транзакция уже откачена")

        await self.session.commit()
        self._is_committed = True

    async def rollback(self) -> None:
        if self._is_committed:
            raise RuntimeError("Транзакция уже зафиксирована, нельзя откатить")
        if self._is_rolled_back:
            return

        await self.session.rollback()
        self._is_rolled_back = True

    async def __aenter__(self) -> 'UnitOfWork':
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is None and not self._is_committed:
                await self.commit()
            elif exc_type is not None and not self._is_rolled_back and not self._is_committed:
                await self.rollback()
        finally:
            await self.session.close()

    def __repr__(self) -> str:
        status = "active"
        if self._is_committed:
            status = "committed"
        elif self._is_rolled_back:
            status = "rolled back"
        return f"UnitOfWork(session_id={id(self.session)}, status={status})"
