from datetime import date
from typing import Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.database.managers.kid_manager import KidManager
from app.database.models import Kid, User
from app.database.session import async_session
from app.integrations.storage import StorageClient
from app.middlewares.profile_middleware import ProfileMiddleware
from app.utils.calculators import age_at_date
from app.utils.datetime_utils import format_date
from app.utils.media import send_photo_with_retry
from app.utils.validation import format_national_number
from app.utils.logging_config import get_logger


router = Router(name="kids")
router.message.middleware(ProfileMiddleware(require_complete=True))
router.callback_query.middleware(ProfileMiddleware(require_complete=True))

logger = get_logger(__name__)


def kid_text(kid: Kid) -> str:
    """Карточка ребенка"""
    age = age_at_date(kid.birth_date, date.today())
    lines = [
        f"<b>{kid.full_name}</b>",
        f"Né(e) le {format_date(kid.birth_date)} ({int(age)} ans)",
        f"{kid.address}, {kid.postal_code} {kid.locality}",
    ]
    if kid.national_number:
        status = "" if kid.is_national_number_valid else " (à vérifier)"
        lines.append(f"Numéro national : {format_national_number(kid.national_number)}{status}")
    lines.append(f"Photos pendant le stage : {'autorisées' if kid.photo_consent else 'non autorisées'}")

    missing = [
        title for title, record in (
            ("santé", kid.health),
            ("allergies", kid.allergies),
            ("activités", kid.activity_profile),
            ("départ", kid.departure),
            ("inclusion", kid.inclusion),
        ) if record is None
    ]
    if missing:
        lines.append(f"\nFiche incomplète : {', '.join(missing)}")
    if kid.has_inclusion_needs:
        lines.append("Besoins spécifiques déclarés : une demande d'inclusion est nécessaire pour l'inscription")
    return "\n".join(lines)


async def _show_kids(message: Message, user: User) -> None:
    async with async_session() as session:
        kids = await KidManager(session).list_kids(user.id)
    text = "<b>Mes enfants</b>" if kids else "Aucun enfant enregistré. Ajoutez votre premier enfant."
    await message.answer(text, reply_markup=kb.kids_menu(kids))


@router.message(F.text == 'Mes enfants')
async def list_kids(message: Message, user: User):
    """Список детей родителя"""
    logger.info(f"Пользователь {message.from_user.id} открыл список детей")
    try:
        await _show_kids(message, user)
    except Exception as e:
        logger.error(f"Ошибка показа детей пользователя {message.from_user.id}: {e}", exc_info=True)
        await message.answer("Une erreur est survenue. Veuillez réessayer.", reply_markup=kb.main)


@router.callback_query(F.data == 'kids_list')
async def list_kids_callback(callback: CallbackQuery, state: FSMContext, user: User):
    await state.clear()
    await callback.answer()
    await _show_kids(callback.message, user)


@router.callback_query(F.data.startswith('kid_view:'))
async def kid_details(callback: CallbackQuery, user: User, photo_storage: Optional[StorageClient] = None):
    """Карточка ребенка с фото по подписанной ссылке"""
    kid_id = int(callback.data.split(':')[1])
    logger.info(f"Пользователь {callback.from_user.id} открыл карточку ребенка {kid_id}")

    try:
        async with async_session() as session:
            manager = KidManager(session, photo_storage)
            kid = await manager.get_kid(user.id, kid_id)
            if kid is None:
                await callback.answer("Enfant introuvable", show_alert=True)
                return
            photo_url = await manager.get_photo_url(kid)

        await callback.answer()
        text = kid_text(kid)
        if photo_url:
            sent = await send_photo_with_retry(callback.message, photo_url, caption=text,
                                               reply_markup=kb.kid_details_menu(kid.id))
            if sent is not None:
                return
            text += "\n\nLa photo n'a pas pu être chargée."
        await callback.message.answer(text, reply_markup=kb.kid_details_menu(kid.id))
    except Exception as e:
        logger.error(f"Ошибка показа ребенка {kid_id}: {e}", exc_info=True)
        await callback.message.answer("Une erreur est survenue. Veuillez réessayer.")


@router.callback_query(F.data.startswith('kid_archive:'))
async def confirm_archive(callback: CallbackQuery):
    kid_id = int(callback.data.split(':')[1])
    await callback.answer()
    await callback.message.answer(
        "Archiver cet enfant ? Il n'apparaîtra plus dans vos listes, ses inscriptions sont conservées.",
        reply_markup=kb.kid_archive_confirm(kid_id)
    )


@router.callback_query(F.data.startswith('kid_archive_yes:'))
async def archive_kid(callback: CallbackQuery, user: User):
    kid_id = int(callback.data.split(':')[1])
    async with async_session() as session:
        archived, error = await KidManager(session).archive(user.id, kid_id)

    if error:
        await callback.answer(error, show_alert=True)
        return

    logger.info(f"Пользователь {callback.from_user.id} архивировал ребенка {kid_id}")
    await callback.answer("Enfant archivé")
    await _show_kids(callback.message, user)
