from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.utils.cart import Cart, load_cart, save_cart
from app.utils.datetime_utils import format_period
from app.utils.logging_config import get_logger


router = Router(name="cart")

logger = get_logger(__name__)


def cart_text(cart: Cart) -> str:
    if not cart.items:
        return "Votre panier est vide."

    lines = ["<b>Mon panier</b>\n"]
    for item in cart.items:
        tariff = []
        if item.price_type.is_local:
            tariff.append("tarif local")
        if item.price_type.is_reduced:
            tariff.append("tarif réduit")
        suffix = f" ({', '.join(tariff)})" if tariff else ""
        lines.append(
            f"{item.activity_name} - {item.kid_name}\n"
            f"{item.center_name or ''} {format_period(item.start_date, item.end_date)}\n"
            f"{item.price} €{suffix}\n"
        )
    if cart.reduced_declaration:
        lines.append("Vous avez déclaré avoir droit au tarif réduit.")
    lines.append(f"<b>Total : {cart.total()} €</b>")
    return "\n".join(lines)


@router.message(F.text == 'Mon panier')
async def show_cart(message: Message, state: FSMContext):
    """Содержимое корзины"""
    logger.info(f"Пользователь {message.from_user.id} открыл корзину")
    try:
        cart = await load_cart(state)
        await message.answer(cart_text(cart), reply_markup=kb.cart_menu(cart))
    except Exception as e:
        logger.error(f"Ошибка показа корзины {message.from_user.id}: {e}", exc_info=True)
        await message.answer("Une erreur est survenue. Veuillez réessayer.", reply_markup=kb.main)


@router.callback_query(F.data == 'cart_show')
async def show_cart_callback(callback: CallbackQuery, state: FSMContext):
    cart = await load_cart(state)
    await callback.answer()
    await callback.message.answer(cart_text(cart), reply_markup=kb.cart_menu(cart))


@router.callback_query(F.data.startswith('cart_remove:'))
async def remove_item(callback: CallbackQuery, state: FSMContext):
    item_id = callback.data.split(':', 1)[1]
    cart = await load_cart(state)
    if not cart.remove_item(item_id):
        await callback.answer("Article déjà retiré")
    else:
        await save_cart(state, cart)
        await callback.answer("Article retiré")
    await callback.message.edit_text(cart_text(cart), reply_markup=kb.cart_menu(cart))


@router.callback_query(F.data == 'cart_clear')
async def clear_cart(callback: CallbackQuery, state: FSMContext):
    cart = await load_cart(state)
    cart.clear()
    await save_cart(state, cart)
    logger.info(f"Пользователь {callback.from_user.id} очистил корзину")
    await callback.answer("Panier vidé")
    await callback.message.edit_text(cart_text(cart), reply_markup=kb.cart_menu(cart))


@router.callback_query(F.data == 'cart_reduced_toggle')
async def toggle_reduced(callback: CallbackQuery, state: FSMContext):
    """Декларация сниженного тарифа: все позиции пересчитываются"""
    cart = await load_cart(state)
    cart.set_reduced_declaration(not cart.reduced_declaration)
    await save_cart(state, cart)
    logger.info(
        f"Пользователь {callback.from_user.id} изменил декларацию сниженного тарифа: {cart.reduced_declaration}"
    )
    await callback.answer()
    await callback.message.edit_text(cart_text(cart), reply_markup=kb.cart_menu(cart))
