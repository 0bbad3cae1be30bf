"""
Менеджер оформления корзины: оплата сразу через внешний сервис
или отложенный счет со структурированным сообщением.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseManager
from .activity_manager import ActivityManager
from ..repositories.activity_repository import ActivityRepository
from ..repositories.kid_repository import KidRepository
from ..repositories.registration_repository import InvoiceRepository, RegistrationRepository
from ..models import Invoice, InvoiceStatus, PaymentStatus, Registration, User

from app.integrations.payment_gateway import PaymentGateway, PaymentGatewayError
from app.schemas.cart import CartItem
from app.utils.calculators import PriceSelector
from app.utils.cart import Cart
from app.utils.invoicing import (
    generate_invoice_number, generate_structured_communication, invoice_due_date
)
from app.utils.logging_config import get_payment_logger


@dataclass
class CheckoutResult:
    """Итог оформления"""
    registrations: List[Registration] = field(default_factory=list)
    skipped: List[CartItem] = field(default_factory=list)
    invoice: Optional[Invoice] = None
    payment_url: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return sum((r.amount_paid for r in self.registrations), Decimal('0'))


class CheckoutError(Exception):
    """Оформление невозможно. Текст для пользователя"""


class CheckoutManager(BaseManager):
    """Оформление записей из корзины"""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.logger = get_payment_logger()
        self.activity_manager = ActivityManager(session)
        self.activity_repo = ActivityRepository(session)
        self.kid_repo = KidRepository(session)
        self.registration_repo = RegistrationRepository(session)
        self.invoice_repo = InvoiceRepository(session)

    @staticmethod
    def validate_items(cart: Cart) -> List[str]:
        """Проверка корзины перед оформлением. Пустой список - ошибок нет"""
        if not cart.items:
            return ["Votre panier est vide"]

        errors = []
        for item in cart.items:
            if not item.activity_id or not item.kid_id:
                errors.append(f"{item.activity_name} : article incomplet")
            elif item.price is None or item.price <= 0:
                errors.append(f"{item.activity_name} ({item.kid_name}) : prix invalide")
        return errors

    async def _register_items(
        self,
        user: User,
        cart: Cart,
        invoice_id: Optional[int] = None,
        due_date: Optional[date] = None
    ) -> CheckoutResult:
        """
        Создать записи в текущей транзакции.
        Цена пересчитывается по актуальным тарифам, уже записанные
        и заполненные сессии пропускаются.
        """
        result = CheckoutResult()

        for item in cart.items:
            kid = await self.kid_repo.get_for_user(item.kid_id, user.id)
            activity = await self.activity_repo.get_by_id(item.activity_id)

            if kid is None or activity is None:
                self.logger.warning(f"Позиция {item.id}: ребенок или сессия не найдены, пропуск")
                result.skipped.append(item)
                continue
            if await self.registration_repo.is_kid_registered(kid.id, activity.id):
                self.logger.info(f"Позиция {item.id}: ребенок уже записан, пропуск")
                result.skipped.append(item)
                continue
            if activity.is_full:
                self.logger.info(f"Позиция {item.id}: мест нет, пропуск")
                result.skipped.append(item)
                continue

            prices = await self.activity_manager.price_snapshot(activity, kid)
            amount, price_type = PriceSelector.select(prices, cart.reduced_declaration)
            if amount is None:
                result.skipped.append(item)
                continue

            registration = await self.registration_repo.add(
                user_id=user.id,
                kid_id=kid.id,
                activity_session_id=activity.id,
                invoice_id=invoice_id,
                price_type=price_type,
                reduced_declaration=cart.reduced_declaration,
                amount_paid=amount,
                payment_status=PaymentStatus.pending,
                due_date=due_date,
            )
            await self.activity_repo.increment_registrations(activity)
            result.registrations.append(registration)

        return result

    async def _unique_invoice_number(self) -> str:
        for _ in range(5):
            number = generate_invoice_number()
            if not await self.invoice_repo.number_exists(number):
                return number
        raise RuntimeError("Не удалось сгенерировать уникальный номер счета")

    async def create_invoice(self, user: User, cart: Cart) -> Tuple[Optional[CheckoutResult], Optional[str]]:
        """
        Отложенная оплата: счет и записи в статусе pending

        Returns:
            (результат, сообщение об ошибке)
        """
        errors = self.validate_items(cart)
        if errors:
            return None, "\n".join(errors)

        self._log_operation_start("create_invoice", user_id=user.id, items=cart.item_count())
        due_date = invoice_due_date()

        async def operation() -> CheckoutResult:
            invoice = await self.invoice_repo.add(
                user_id=user.id,
                invoice_number=await self._unique_invoice_number(),
                amount=Decimal('0'),
                status=InvoiceStatus.pending,
                communication=generate_structured_communication(),
                due_date=due_date,
            )
            result = await self._register_items(user, cart, invoice_id=invoice.id, due_date=due_date)
            if not result.registrations:
                raise CheckoutError("Tous les stages du panier sont déjà réservés ou complets")

            invoice.amount = result.total
            result.invoice = invoice
            return result

        try:
            result = await self._execute_in_transaction(operation)
        except CheckoutError as e:
            self._log_operation_end("create_invoice", success=False)
            return None, str(e)
        except Exception:
            self._log_operation_end("create_invoice", success=False)
            return None, self.RETRY_MESSAGE

        self._log_business_event(
            "invoice_created",
            user_id=user.id,
            invoice=result.invoice.invoice_number,
            amount=result.invoice.amount,
            registrations=len(result.registrations),
            skipped=len(result.skipped),
        )
        return result, None

    async def start_payment(
        self,
        user: User,
        cart: Cart,
        gateway: PaymentGateway,
        success_url: str,
        cancel_url: str
    ) -> Tuple[Optional[CheckoutResult], Optional[str]]:
        """
        Оплата сразу: записи pending и ссылка на страницу оплаты.
        Если сервис оплаты недоступен, записи не сохраняются.
        """
        errors = self.validate_items(cart)
        if errors:
            return None, "\n".join(errors)

        self._log_operation_start("start_payment", user_id=user.id, items=cart.item_count())

        async def operation() -> CheckoutResult:
            result = await self._register_items(user, cart)
            if not result.registrations:
                raise CheckoutError("Tous les stages du panier sont déjà réservés ou complets")

            line_items = [
                {
                    "registration_id": registration.id,
                    "activity_id": registration.activity_session_id,
                    "kid_id": registration.kid_id,
                    "amount": str(registration.amount_paid),
                    "price_type": registration.price_type.value,
                }
                for registration in result.registrations
            ]
            checkout = await gateway.create_checkout(
                user_id=user.id,
                email=user.email,
                items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
            )
            for registration in result.registrations:
                registration.checkout_session_id = checkout.session_id
            result.payment_url = checkout.url
            return result

        try:
            result = await self._execute_in_transaction(operation)
        except CheckoutError as e:
            self._log_operation_end("start_payment", success=False)
            return None, str(e)
        except PaymentGatewayError:
            self._log_operation_end("start_payment", success=False)
            return None, "Le service de paiement est indisponible. Veuillez réessayer ou choisir le paiement par facture."
        except Exception:
            self._log_operation_end("start_payment", success=False)
            return None, self.RETRY_MESSAGE

        self._log_business_event(
            "payment_started",
            user_id=user.id,
            total=result.total,
            registrations=len(result.registrations),
        )
        return result, None
