"""
Менеджер каталога стажей: предложения с ценой для выбранного ребенка.
"""

from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from ..repositories.activity_repository import ActivityRepository
from ..repositories.tariff_repository import TariffConditionRepository
from ..repositories.registration_repository import RegistrationRepository
from ..repositories.enrollment_repository import WaitingListRepository
from ..models import ActivitySession, Center, Kid

from app.schemas.activity import ActivityFilters, ActivityOffer
from app.schemas.cart import CartItem, PriceSnapshot
from app.utils.calculators import PriceSelector, TariffResolver, is_kid_eligible
from app.utils.listing import filter_sessions, popular_sessions


class ActivityManager(BaseManager):
    """Каталог и расчет цены предложения"""

    LISTING_ERROR = "Impossible de charger les stages pour le moment. Veuillez réessayer."

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.activity_repo = ActivityRepository(session)
        self.tariff_repo = TariffConditionRepository(session)
        self.registration_repo = RegistrationRepository(session)
        self.waiting_repo = WaitingListRepository(session)

    async def price_snapshot(self, activity: ActivitySession, kid: Optional[Kid]) -> PriceSnapshot:
        """Снимок тарифов с правом ребенка на местный тариф"""
        local_eligible = False
        if kid is not None:
            local_eligible = await TariffResolver.resolve(
                self.tariff_repo,
                activity.tariff_condition_id,
                kid.postal_code,
                kid.school_id,
            )
        return PriceSnapshot.from_session(activity, local_eligible)

    async def _build_offer(
        self,
        activity: ActivitySession,
        kid: Optional[Kid],
        reduced_requested: bool,
        registered_ids: List[int],
        waiting_ids: List[int]
    ) -> ActivityOffer:
        prices = await self.price_snapshot(activity, kid)
        price, price_type = PriceSelector.select(prices, reduced_requested)
        return ActivityOffer(
            session_id=activity.id,
            stage_title=activity.stage.title,
            center_name=activity.center.name,
            start_date=activity.start_date,
            end_date=activity.end_date,
            age_min=activity.stage.age_min,
            age_max=activity.stage.age_max,
            remaining_places=activity.remaining_places,
            is_full=activity.is_full,
            period=activity.period,
            week=activity.week,
            price=price,
            price_type=price_type,
            prices=prices,
            already_registered=activity.id in registered_ids,
            on_waiting_list=activity.id in waiting_ids,
            needs_inclusion=bool(kid is not None and kid.has_inclusion_needs),
        )

    async def list_offers(
        self,
        filters: ActivityFilters,
        kid: Optional[Kid] = None,
        reduced_requested: bool = False,
        today: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> Tuple[List[ActivityOffer], Optional[str]]:
        """
        Предложения каталога

        Returns:
            (предложения, сообщение об ошибке). При ошибке загрузки список
            пустой, частичный результат не возвращается
        """
        now = now or datetime.now()
        today = today or now.date()
        self._log_operation_start("list_offers", kid_id=kid.id if kid else None, center_id=filters.center_id)

        try:
            candidates = await self.activity_repo.get_listing_candidates(today, filters.center_id)
            if kid is not None:
                filters = filters.model_copy(update={'kid_birth_date': kid.birth_date})
                registered_ids = await self.registration_repo.get_registered_session_ids(kid.id)
                waiting_ids = await self.waiting_repo.get_waiting_session_ids(kid.id)
            else:
                registered_ids, waiting_ids = [], []

            selected = filter_sessions(candidates, filters, today=today, now=now)
            offers = [
                await self._build_offer(activity, kid, reduced_requested, registered_ids, waiting_ids)
                for activity in selected
            ]
        except Exception as e:
            self.logger.error(f"Ошибка загрузки каталога: {e}", exc_info=True)
            self._log_operation_end("list_offers", success=False)
            return [], self.LISTING_ERROR

        self._log_operation_end("list_offers", success=True, count=len(offers))
        return offers, None

    async def popular_offers(
        self,
        center_id: Optional[int] = None,
        age_range: Optional[str] = None,
        week: Optional[str] = None,
        limit: int = 4,
        today: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> Tuple[List[ActivityOffer], Optional[str]]:
        """Популярные стажи без привязки к ребенку"""
        now = now or datetime.now()
        today = today or now.date()
        try:
            candidates = await self.activity_repo.get_listing_candidates(today, center_id)
            selected = popular_sessions(
                candidates, center_id=center_id, age_range=age_range, week=week,
                limit=limit, today=today, now=now,
            )
            offers = [await self._build_offer(activity, None, False, [], []) for activity in selected]
        except Exception as e:
            self.logger.error(f"Ошибка загрузки популярных стажей: {e}", exc_info=True)
            return [], self.LISTING_ERROR
        return offers, None

    async def get_centers(self) -> List[Center]:
        return await self.activity_repo.get_centers()

    async def get_periods(self, center_id: Optional[int] = None, today: Optional[date] = None) -> List[str]:
        try:
            return await self.activity_repo.get_periods(today or date.today(), center_id)
        except Exception as e:
            self.logger.error(f"Ошибка загрузки периодов: {e}", exc_info=True)
            return []

    async def get_weeks(self, center_id: Optional[int] = None, today: Optional[date] = None) -> List[str]:
        try:
            return await self.activity_repo.get_weeks(today or date.today(), center_id)
        except Exception as e:
            self.logger.error(f"Ошибка загрузки недель: {e}", exc_info=True)
            return []

    async def build_cart_item(
        self,
        activity_id: int,
        kid: Kid,
        reduced_requested: bool = False
    ) -> Tuple[Optional[CartItem], Optional[str]]:
        """
        Позиция корзины для пары (сессия, ребенок)

        Returns:
            (позиция, причина отказа)
        """
        activity = await self.activity_repo.get_by_id(activity_id)
        if activity is None:
            return None, "Stage introuvable"
        if not is_kid_eligible(kid.birth_date, activity):
            return None, f"{kid.full_name} n'a pas l'âge requis pour ce stage"
        if activity.is_full:
            return None, "Ce stage est complet"
        if kid.has_inclusion_needs:
            return None, "Une demande d'inclusion est nécessaire pour ce stage"
        if await self.registration_repo.is_kid_registered(kid.id, activity.id):
            return None, f"{kid.full_name} est déjà inscrit(e) à ce stage"

        prices = await self.price_snapshot(activity, kid)
        price, price_type = PriceSelector.select(prices, reduced_requested)
        if price is None:
            return None, "Aucun tarif n'est défini pour ce stage"

        item = CartItem(
            activity_id=activity.id,
            kid_id=kid.id,
            kid_name=kid.full_name,
            activity_name=activity.stage.title,
            center_name=activity.center.name,
            start_date=activity.start_date,
            end_date=activity.end_date,
            price=price,
            price_type=price_type,
            prices=prices,
        )
        return item, None
