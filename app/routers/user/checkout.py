from typing import Optional

from aiogram import Router, F
from aiogram.types import CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.config import settings
from app.database.managers.checkout_manager import CheckoutManager, CheckoutResult
from app.database.models import User
from app.database.session import async_session
from app.integrations.payment_gateway import PaymentGateway
from app.middlewares.profile_middleware import ProfileMiddleware
from app.routers.user.cart import cart_text
from app.utils.cart import load_cart, save_cart
from app.utils.datetime_utils import format_date
from app.utils.logging_config import get_payment_logger


router = Router(name="checkout")
router.callback_query.middleware(ProfileMiddleware(require_complete=True))

logger = get_payment_logger()


def skipped_text(result: CheckoutResult) -> str:
    if not result.skipped:
        return ""
    names = "\n".join(f"- {item.activity_name} ({item.kid_name})" for item in result.skipped)
    return f"\n\nNon inscrits (déjà inscrits ou complets) :\n{names}"


@router.callback_query(F.data == 'checkout_start')
async def checkout_start(callback: CallbackQuery, state: FSMContext):
    """Выбор способа оплаты"""
    cart = await load_cart(state)
    errors = CheckoutManager.validate_items(cart)
    if errors:
        await callback.answer("\n".join(errors), show_alert=True)
        return

    logger.info(f"Пользователь {callback.from_user.id} перешел к оформлению: {cart.item_count()} поз., {cart.total()}")
    await callback.answer()
    await callback.message.answer(
        f"{cart_text(cart)}\n\nComment souhaitez-vous payer ?",
        reply_markup=kb.checkout_options(settings.payment_enabled)
    )


@router.callback_query(F.data == 'checkout_invoice')
async def checkout_invoice(callback: CallbackQuery, state: FSMContext, user: User):
    """Отложенная оплата по счету. Корзина очищается только при успехе"""
    cart = await load_cart(state)
    async with async_session() as session:
        result, error = await CheckoutManager(session).create_invoice(user, cart)

    if error:
        logger.warning(f"Счет для {callback.from_user.id} не создан: {error}")
        await callback.answer()
        await callback.message.answer(error, reply_markup=kb.cart_menu(cart))
        return

    cart.clear()
    await save_cart(state, cart)
    invoice = result.invoice
    logger.info(f"Пользователь {callback.from_user.id}: счет {invoice.invoice_number} на {invoice.amount}")

    await callback.answer()
    await callback.message.answer(
        "<b>Inscription enregistrée</b>\n\n"
        f"Facture : {invoice.invoice_number}\n"
        f"Montant : {invoice.amount} €\n"
        f"Communication structurée : {invoice.communication}\n"
        f"À payer avant le : {format_date(invoice.due_date)}"
        + skipped_text(result),
        reply_markup=kb.dashboard_menu
    )


@router.callback_query(F.data == 'checkout_pay_now')
async def checkout_pay_now(callback: CallbackQuery, state: FSMContext, user: User,
                           payment_gateway: Optional[PaymentGateway] = None):
    """Оплата сразу: ссылка на страницу оплаты"""
    if payment_gateway is None or not settings.payment_enabled:
        await callback.answer("Le paiement en ligne n'est pas disponible. Choisissez la facture.", show_alert=True)
        return

    cart = await load_cart(state)
    async with async_session() as session:
        result, error = await CheckoutManager(session).start_payment(
            user,
            cart,
            payment_gateway,
            success_url=f"{settings.PORTAL_URL}/paiement/succes",
            cancel_url=f"{settings.PORTAL_URL}/paiement/annule",
        )

    if error:
        logger.warning(f"Оплата для {callback.from_user.id} не начата: {error}")
        await callback.answer()
        await callback.message.answer(error, reply_markup=kb.checkout_options(settings.payment_enabled))
        return

    cart.clear()
    await save_cart(state, cart)
    logger.info(f"Пользователь {callback.from_user.id} перенаправлен на оплату {result.total}")

    await callback.answer()
    await callback.message.answer(
        f"Total à payer : {result.total} €\nCliquez ci-dessous pour procéder au paiement." + skipped_text(result),
        reply_markup=kb.payment_link(result.payment_url)
    )
