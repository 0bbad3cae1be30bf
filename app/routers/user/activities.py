from typing import Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.config import settings
from app.database.managers.activity_manager import ActivityManager
from app.database.managers.enrollment_manager import EnrollmentManager
from app.database.managers.kid_manager import KidManager
from app.database.models import User
from app.database.session import async_session
from app.routers.user.user_main import format_offer
from app.schemas.activity import ActivityFilters
from app.user_panel.states import ActivityBrowsing
from app.utils.cart import load_cart, save_cart
from app.utils.listing import paginate
from app.middlewares.profile_middleware import ProfileMiddleware
from app.utils.logging_config import get_logger


router = Router(name="activities")
router.message.middleware(ProfileMiddleware(require_complete=True))
router.callback_query.middleware(ProfileMiddleware(require_complete=True))

logger = get_logger(__name__)


async def start_browsing(message: Message, state: FSMContext, user: User) -> None:
    """Первый шаг каталога: выбор ребенка"""
    async with async_session() as session:
        kids = await KidManager(session).list_kids(user.id)

    if not kids:
        await message.answer(
            "Ajoutez d'abord un enfant pour voir les stages qui lui conviennent.",
            reply_markup=kb.kids_menu(kids)
        )
        return

    await state.set_state(ActivityBrowsing.choosing_kid)
    await message.answer("Pour quel enfant cherchez-vous un stage ?", reply_markup=kb.choose_kid(kids))


async def show_offers(message: Message, state: FSMContext, user: User, page: int = 0, edit: bool = False) -> None:
    """Страница предложений по сохраненным фильтрам"""
    data = await state.get_data()
    kid_id = data['browse_kid_id']
    cart = await load_cart(state)

    async with async_session() as session:
        kid = await KidManager(session).get_kid(user.id, kid_id)
        if kid is None:
            await message.answer("Enfant introuvable", reply_markup=kb.main)
            await state.clear()
            return
        filters = ActivityFilters(
            center_id=data.get('browse_center_id'),
            period=data.get('browse_period'),
            week=data.get('browse_week'),
        )
        offers, error = await ActivityManager(session).list_offers(
            filters, kid=kid, reduced_requested=cart.reduced_declaration
        )

    if error:
        await message.answer(error, reply_markup=kb.inline_in_menu)
        return
    if not offers:
        await message.answer(
            f"Aucun stage disponible pour {kid.full_name} avec ces critères.",
            reply_markup=kb.offers_page([], 0, 1, cart, kid_id)
        )
        return

    page_offers, total_pages = paginate(offers, page, settings.LISTING_PAGE_SIZE)
    page = min(max(page, 0), total_pages - 1)
    await state.set_state(ActivityBrowsing.viewing_offers)
    await state.update_data(browse_page=page)

    text = (
        f"<b>Stages pour {kid.full_name}</b> (page {page + 1}/{total_pages})\n\n"
        + "\n\n".join(format_offer(offer) for offer in page_offers)
    )
    keyboard = kb.offers_page(page_offers, page, total_pages, cart, kid_id)
    if edit:
        await message.edit_text(text, reply_markup=keyboard)
    else:
        await message.answer(text, reply_markup=keyboard)


@router.message(F.text == 'Stages')
async def browse(message: Message, state: FSMContext, user: User):
    logger.info(f"Пользователь {message.from_user.id} открыл каталог")
    try:
        await state.clear()
        await start_browsing(message, state, user)
    except Exception as e:
        logger.error(f"Ошибка открытия каталога для {message.from_user.id}: {e}", exc_info=True)
        await message.answer("Une erreur est survenue. Veuillez réessayer.", reply_markup=kb.main)


@router.callback_query(F.data == 'browse_restart')
async def browse_restart(callback: CallbackQuery, state: FSMContext, user: User):
    await state.clear()
    await callback.answer()
    await start_browsing(callback.message, state, user)


@router.callback_query(ActivityBrowsing.choosing_kid, F.data.startswith('browse_kid:'))
async def choose_kid(callback: CallbackQuery, state: FSMContext):
    kid_id = int(callback.data.split(':')[1])
    await state.update_data(browse_kid_id=kid_id)

    async with async_session() as session:
        centers = await ActivityManager(session).get_centers()

    await state.set_state(ActivityBrowsing.choosing_center)
    await callback.answer()
    await callback.message.edit_text("Dans quel centre ?", reply_markup=kb.choose_center(centers))


@router.callback_query(ActivityBrowsing.choosing_center, F.data.startswith('browse_center:'))
async def choose_center(callback: CallbackQuery, state: FSMContext):
    raw = callback.data.split(':')[1]
    center_id: Optional[int] = None if raw == 'all' else int(raw)

    async with async_session() as session:
        periods = await ActivityManager(session).get_periods(center_id)

    await state.update_data(browse_center_id=center_id, browse_periods=periods)
    await state.set_state(ActivityBrowsing.choosing_period)
    await callback.answer()
    await callback.message.edit_text("Pour quelle période ?", reply_markup=kb.choose_period(periods))


@router.callback_query(ActivityBrowsing.choosing_period, F.data.startswith('browse_period:'))
async def choose_period(callback: CallbackQuery, state: FSMContext, user: User):
    raw = callback.data.split(':')[1]
    data = await state.get_data()
    periods = data.get('browse_periods', [])

    period = None
    if raw != 'all':
        index = int(raw)
        if index >= len(periods):
            await callback.answer("Période inconnue", show_alert=True)
            return
        period = periods[index]

    async with async_session() as session:
        weeks = await ActivityManager(session).get_weeks(data.get('browse_center_id'))

    await state.update_data(browse_period=period, browse_weeks=weeks, browse_week=None)
    await callback.answer()
    if not weeks:
        await show_offers(callback.message, state, user)
        return

    await state.set_state(ActivityBrowsing.choosing_week)
    await callback.message.edit_text("Quelle semaine ?", reply_markup=kb.choose_week(weeks))


@router.callback_query(ActivityBrowsing.choosing_week, F.data.startswith('browse_week:'))
async def choose_week(callback: CallbackQuery, state: FSMContext, user: User):
    raw = callback.data.split(':')[1]
    data = await state.get_data()
    weeks = data.get('browse_weeks', [])

    week = None
    if raw != 'all':
        index = int(raw)
        if index >= len(weeks):
            await callback.answer("Semaine inconnue", show_alert=True)
            return
        week = weeks[index]

    await state.update_data(browse_week=week)
    await callback.answer()
    logger.debug(f"Фильтры каталога пользователя {callback.from_user.id}: {await state.get_data()}")
    await show_offers(callback.message, state, user)


@router.callback_query(ActivityBrowsing.viewing_offers, F.data.startswith('offers_page:'))
async def change_page(callback: CallbackQuery, state: FSMContext, user: User):
    page = int(callback.data.split(':')[1])
    await callback.answer()
    await show_offers(callback.message, state, user, page=page, edit=True)


@router.callback_query(ActivityBrowsing.viewing_offers, F.data.startswith('offer_add:'))
async def add_to_cart(callback: CallbackQuery, state: FSMContext, user: User):
    """Добавить предложение в корзину. Цена пересчитывается на сервере"""
    session_id = int(callback.data.split(':')[1])
    data = await state.get_data()
    cart = await load_cart(state)

    async with async_session() as session:
        kid = await KidManager(session).get_kid(user.id, data['browse_kid_id'])
        if kid is None:
            await callback.answer("Enfant introuvable", show_alert=True)
            return
        item, error = await ActivityManager(session).build_cart_item(session_id, kid, cart.reduced_declaration)

    if error:
        await callback.answer(error, show_alert=True)
        return
    if not cart.add_item(item):
        await callback.answer("Ce stage est déjà dans votre panier", show_alert=True)
        return

    await save_cart(state, cart)
    logger.info(f"Пользователь {callback.from_user.id} добавил {item.id} в корзину")
    await callback.answer(f"Ajouté au panier : {item.activity_name} ({item.price} €)")
    await show_offers(callback.message, state, user, page=data.get('browse_page', 0), edit=True)


@router.callback_query(ActivityBrowsing.viewing_offers, F.data.startswith('offer_wait:'))
async def join_waiting_list(callback: CallbackQuery, state: FSMContext, user: User):
    session_id = int(callback.data.split(':')[1])
    data = await state.get_data()

    async with async_session() as session:
        _, error = await EnrollmentManager(session).join_waiting_list(user.id, data['browse_kid_id'], session_id)

    if error:
        await callback.answer(error, show_alert=True)
        return

    await callback.answer("Inscription sur la liste d'attente enregistrée", show_alert=True)
    await show_offers(callback.message, state, user, page=data.get('browse_page', 0), edit=True)


@router.callback_query(ActivityBrowsing.viewing_offers, F.data.startswith('offer_unwait:'))
async def leave_waiting_list(callback: CallbackQuery, state: FSMContext, user: User):
    session_id = int(callback.data.split(':')[1])
    data = await state.get_data()

    async with async_session() as session:
        _, error = await EnrollmentManager(session).cancel_waiting_list(user.id, data['browse_kid_id'], session_id)

    if error:
        await callback.answer(error, show_alert=True)
        return

    logger.info(f"Пользователь {callback.from_user.id} покинул лист ожидания сессии {session_id}")
    await callback.answer("Vous avez quitté la liste d'attente", show_alert=True)
    await show_offers(callback.message, state, user, page=data.get('browse_page', 0), edit=True)


@router.callback_query(ActivityBrowsing.viewing_offers, F.data.startswith('offer_inclusion:'))
async def request_inclusion(callback: CallbackQuery, state: FSMContext, user: User):
    """Запрос на инклюзию вместо прямой записи"""
    session_id = int(callback.data.split(':')[1])
    data = await state.get_data()

    async with async_session() as session:
        _, error = await EnrollmentManager(session).request_inclusion(user.id, data['browse_kid_id'], session_id)

    if error:
        await callback.answer(error, show_alert=True)
        return

    await callback.answer(
        "Votre demande d'inclusion a été envoyée. Nous vous recontacterons rapidement.",
        show_alert=True
    )
