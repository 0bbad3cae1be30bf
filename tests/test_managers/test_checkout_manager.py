"""
Тесты CheckoutManager: отложенный счет и оплата через внешний сервис.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

from app.database.models import Invoice, InvoiceStatus, PaymentStatus, PriceType, Registration
from app.database.managers.activity_manager import ActivityManager
from app.database.managers.checkout_manager import CheckoutManager
from app.database.repositories.activity_repository import ActivityRepository
from app.database.repositories.registration_repository import RegistrationRepository
from app.integrations.payment_gateway import CheckoutSession, PaymentGatewayError
from app.schemas.cart import CartItem, PriceSnapshot
from app.utils.cart import Cart
from app.utils.invoicing import is_valid_structured_communication


def full_session_item(test_data):
    """Позиция на заполненную сессию (добавлена, пока места были)"""
    activity = test_data["full_session"]
    kid = test_data["kid"]
    return CartItem(
        activity_id=activity.id, kid_id=kid.id, kid_name=kid.full_name,
        activity_name="Aventuriers", start_date=activity.start_date, end_date=activity.end_date,
        price=Decimal('120'), prices=PriceSnapshot(normal=Decimal('120')),
    )


async def cart_with_open_session(db_session, test_data):
    item, _ = await ActivityManager(db_session).build_cart_item(test_data["open_session"].id, test_data["kid"])
    cart = Cart()
    cart.add_item(item)
    return cart


async def remaining_places(db_session, session_id):
    db_session.expunge_all()
    activity = await ActivityRepository(db_session).get_by_id(session_id)
    return activity.remaining_places


class TestValidateItems:
    """Тесты проверки корзины."""

    def test_empty_cart(self):
        assert CheckoutManager.validate_items(Cart()) == ["Votre panier est vide"]

    def test_zero_price(self):
        cart = Cart(items=[CartItem(
            activity_id=1, kid_id=2, kid_name="Léa Dupont", activity_name="Aventuriers",
            start_date=date(2030, 7, 1), end_date=date(2030, 7, 5),
            price=Decimal('0'), prices=PriceSnapshot(normal=Decimal('0')),
        )])

        errors = CheckoutManager.validate_items(cart)

        assert len(errors) == 1
        assert "prix invalide" in errors[0]


@pytest.mark.asyncio
class TestCreateInvoice:
    """Тесты оформления со счетом."""

    async def test_invoice_created(self, db_session, test_data):
        manager = CheckoutManager(db_session)
        session_id = test_data["open_session"].id
        cart = await cart_with_open_session(db_session, test_data)

        result, error = await manager.create_invoice(test_data["parent"], cart)

        assert error is None
        assert result.total == Decimal('90')
        invoice = result.invoice
        assert invoice.amount == Decimal('90')
        assert invoice.status == InvoiceStatus.pending
        assert invoice.invoice_number.startswith("INV-")
        assert is_valid_structured_communication(invoice.communication)

        registration = result.registrations[0]
        assert registration.invoice_id == invoice.id
        assert registration.price_type == PriceType.local
        assert registration.payment_status == PaymentStatus.pending
        assert registration.due_date == invoice.due_date

        assert await remaining_places(db_session, session_id) == 7

    async def test_price_recomputed_with_declaration(self, db_session, test_data):
        """Декларация на сниженный тариф применяется при оформлении."""
        manager = CheckoutManager(db_session)
        cart = await cart_with_open_session(db_session, test_data)
        cart.set_reduced_declaration(True)

        result, error = await manager.create_invoice(test_data["parent"], cart)

        assert error is None
        registration = result.registrations[0]
        assert registration.amount_paid == Decimal('70')
        assert registration.price_type == PriceType.local_reduced
        assert registration.reduced_declaration is True

    async def test_full_session_skipped(self, db_session, test_data):
        manager = CheckoutManager(db_session)
        cart = await cart_with_open_session(db_session, test_data)
        cart.add_item(full_session_item(test_data))

        result, error = await manager.create_invoice(test_data["parent"], cart)

        assert error is None
        assert len(result.registrations) == 1
        assert [item.activity_id for item in result.skipped] == [test_data["full_session"].id]
        assert result.invoice.amount == Decimal('90')

    async def test_already_registered_skipped(self, db_session, test_data):
        manager = CheckoutManager(db_session)
        parent = test_data["parent"]
        cart = await cart_with_open_session(db_session, test_data)
        await manager.create_invoice(parent, cart)

        result, error = await manager.create_invoice(parent, cart)

        assert result is None
        assert error == "Tous les stages du panier sont déjà réservés ou complets"
        assert await manager.invoice_repo._count(Invoice) == 1

    async def test_nothing_saved_when_all_skipped(self, db_session, test_data):
        manager = CheckoutManager(db_session)
        cart = Cart()
        cart.add_item(full_session_item(test_data))

        result, error = await manager.create_invoice(test_data["parent"], cart)

        assert result is None
        assert "déjà réservés ou complets" in error
        assert await manager.invoice_repo._count(Invoice) == 0

    async def test_empty_cart(self, db_session, test_data):
        result, error = await CheckoutManager(db_session).create_invoice(test_data["parent"], Cart())
        assert result is None
        assert error == "Votre panier est vide"

    async def test_foreign_kid_skipped(self, db_session, test_data):
        """Позиция с ребенком другого родителя не оформляется."""
        manager = CheckoutManager(db_session)
        cart = await cart_with_open_session(db_session, test_data)

        result, error = await manager.create_invoice(test_data["stranger"], cart)

        assert result is None
        assert error


@pytest.mark.asyncio
class TestStartPayment:
    """Тесты оплаты через внешний сервис."""

    async def test_payment_started(self, db_session, test_data):
        manager = CheckoutManager(db_session)
        parent = test_data["parent"]
        gateway = AsyncMock()
        gateway.create_checkout.return_value = CheckoutSession(url="https://pay.example.org/s/1", session_id="cs_1")
        cart = await cart_with_open_session(db_session, test_data)

        result, error = await manager.start_payment(
            parent, cart, gateway, "https://example.org/ok", "https://example.org/cancel"
        )

        assert error is None
        assert result.payment_url == "https://pay.example.org/s/1"
        assert result.invoice is None

        kwargs = gateway.create_checkout.await_args.kwargs
        assert kwargs['user_id'] == parent.id
        assert kwargs['email'] == "marie.dupont@example.be"
        assert kwargs['items'] == [{
            "registration_id": result.registrations[0].id,
            "activity_id": test_data["open_session"].id,
            "kid_id": test_data["kid"].id,
            "amount": "90",
            "price_type": "local",
        }]

        registrations = await RegistrationRepository(db_session).list_for_user(parent.id)
        assert [r.checkout_session_id for r in registrations] == ["cs_1"]
        assert registrations[0].invoice_id is None

    async def test_gateway_error_saves_nothing(self, db_session, test_data):
        """Сервис оплаты недоступен: записи не сохраняются, места не заняты."""
        manager = CheckoutManager(db_session)
        session_id = test_data["open_session"].id
        gateway = AsyncMock()
        gateway.create_checkout.side_effect = PaymentGatewayError("HTTP 503")
        cart = await cart_with_open_session(db_session, test_data)

        result, error = await manager.start_payment(test_data["parent"], cart, gateway, "ok", "cancel")

        assert result is None
        assert "paiement est indisponible" in error
        assert await manager.registration_repo._count(Registration) == 0
        assert await remaining_places(db_session, session_id) == 8

    async def test_validation_before_gateway(self, db_session, test_data):
        gateway = AsyncMock()
        result, error = await CheckoutManager(db_session).start_payment(
            test_data["parent"], Cart(), gateway, "ok", "cancel"
        )

        assert error == "Votre panier est vide"
        gateway.create_checkout.assert_not_awaited()
