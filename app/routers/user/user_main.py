from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.filters import CommandStart, Command
from aiogram.fsm.context import FSMContext
from aiogram.enums import ChatAction

import app.user_panel.keyboards as kb
from app.config import settings
from app.database.managers.activity_manager import ActivityManager
from app.database.session import async_session
from app.schemas.activity import ActivityOffer
from app.utils.datetime_utils import format_period
from app.utils.logging_config import get_logger


router = Router(name="user_main")

logger = get_logger(__name__)


def format_offer(offer: ActivityOffer) -> str:
    """Карточка предложения для списка"""
    lines = [
        f"<b>{offer.stage_title}</b>",
        f"{offer.center_name}, {format_period(offer.start_date, offer.end_date)}",
        f"Âge : {offer.age_min:g} - {offer.age_max:g} ans",
    ]
    if offer.price is not None:
        price_line = f"Prix : {offer.price} €"
        if offer.price_type.is_local:
            price_line += " (tarif local)"
        if offer.price_type.is_reduced:
            price_line += " (tarif réduit)"
        lines.append(price_line)
    else:
        lines.append("Prix : non communiqué")

    if offer.already_registered:
        lines.append("Déjà inscrit(e)")
    elif offer.is_full:
        lines.append("Complet" + (" (sur liste d'attente)" if offer.on_waiting_list else ""))
    else:
        lines.append(f"Places restantes : {offer.remaining_places}")
    if offer.needs_inclusion and not offer.already_registered:
        lines.append("Une demande d'inclusion est nécessaire")
    return "\n".join(lines)


@router.message(CommandStart())
async def start_command(message: Message, state: FSMContext):
    """Обработка команды /start: приветствие и популярные стажи"""
    logger.info(f"Пользователь {message.from_user.id} запустил бота")
    try:
        await state.clear()
        await message.bot.send_chat_action(
            chat_id=message.from_user.id,
            action=ChatAction.TYPING
        )
        await message.answer(
            text='Bienvenue sur le portail des stages ! Choisissez une rubrique dans le menu.',
            reply_markup=kb.main
        )

        async with async_session() as session:
            offers, error = await ActivityManager(session).popular_offers(limit=settings.POPULAR_LIMIT)

        if error:
            logger.warning(f"Популярные стажи не загружены для {message.from_user.id}")
            return
        if offers:
            text = "<b>Stages populaires</b>\n\n" + "\n\n".join(format_offer(offer) for offer in offers)
            await message.answer(text)
        logger.debug(f"Популярные стажи показаны пользователю {message.from_user.id}: {len(offers)}")
    except Exception as e:
        logger.error(f"Ошибка при обработке /start для пользователя {message.from_user.id}: {e}", exc_info=True)
        await message.answer("Une erreur est survenue. Veuillez renvoyer /start.")


@router.message(Command("help"))
async def help_command(message: Message):
    """Обработка команды /help"""
    logger.info(f"Пользователь {message.from_user.id} запросил помощь")
    await message.answer(
        'Stages : parcourir les stages et les ajouter au panier\n'
        'Mon panier : valider votre commande\n'
        'Mes enfants : fiches et inscriptions de vos enfants\n'
        'Mon espace : inscriptions et factures\n'
        'Mon profil : vos coordonnées et les personnes autorisées',
        reply_markup=kb.main
    )


@router.callback_query(F.data == 'back_to_main')
async def back_to_main(callback: CallbackQuery, state: FSMContext):
    """Возврат в главное меню. Корзина хранится отдельно и не сбрасывается"""
    logger.info(f"Пользователь {callback.from_user.id} вернулся в главное меню")
    try:
        current_state = await state.get_state()
        if current_state:
            logger.debug(f"Пользователь {callback.from_user.id} вышел из состояния: {current_state}")
        await state.clear()
        await callback.answer()
        await callback.message.answer('Choisissez une rubrique dans le menu.', reply_markup=kb.main)
    except Exception as e:
        await callback.answer()
        logger.error(f"Ошибка возврата в главное меню для пользователя {callback.from_user.id}: {e}", exc_info=True)
        await callback.message.answer("Une erreur est survenue. Veuillez réessayer.", reply_markup=kb.main)
