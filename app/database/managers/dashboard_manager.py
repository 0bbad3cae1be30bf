"""
Менеджер личного кабинета родителя ("Mon espace").
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from ..repositories.registration_repository import InvoiceRepository, RegistrationRepository
from ..repositories.enrollment_repository import WaitingListRepository
from ..models import Invoice, InvoiceStatus, Registration, WaitingListEntry


@dataclass
class DashboardSummary:
    registrations: List[Registration] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)
    waiting_list: List[WaitingListEntry] = field(default_factory=list)

    @property
    def outstanding_balance(self) -> Decimal:
        """Сумма неоплаченных счетов"""
        return sum(
            (invoice.amount for invoice in self.invoices if invoice.status == InvoiceStatus.pending),
            Decimal('0')
        )

    @property
    def overdue_invoices(self) -> List[Invoice]:
        return [invoice for invoice in self.invoices if invoice.is_overdue]


class DashboardManager(BaseManager):
    """Сводка по записям и счетам"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.registration_repo = RegistrationRepository(session)
        self.invoice_repo = InvoiceRepository(session)
        self.waiting_repo = WaitingListRepository(session)

    async def get_summary(self, user_id: int) -> Tuple[Optional[DashboardSummary], Optional[str]]:
        try:
            summary = DashboardSummary(
                registrations=await self.registration_repo.list_for_user(user_id),
                invoices=await self.invoice_repo.list_for_user(user_id),
                waiting_list=await self.waiting_repo.list_for_user(user_id),
            )
        except Exception as e:
            self.logger.error(f"Ошибка загрузки кабинета {user_id}: {e}", exc_info=True)
            return None, self.RETRY_MESSAGE

        self.logger.debug(
            f"Кабинет {user_id}: записей {len(summary.registrations)}, "
            f"счетов {len(summary.invoices)}, к оплате {summary.outstanding_balance}"
        )
        return summary, None
