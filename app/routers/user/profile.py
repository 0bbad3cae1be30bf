from aiogram import Router, F
from aiogram.filters import StateFilter
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext
from pydantic import ValidationError

import app.user_panel.keyboards as kb
from app.database.managers.user_manager import UserManager
from app.database.models import User
from app.database.session import async_session
from app.middlewares.profile_middleware import ProfileMiddleware
from app.schemas.user import ParentProfileData, PROFILE_FIELD_VALIDATORS
from app.user_panel.states import ParentProfile, ProfileFieldEdit
from app.utils.logging_config import get_logger


router = Router(name="profile")
router.message.middleware(ProfileMiddleware())
router.callback_query.middleware(ProfileMiddleware())

logger = get_logger(__name__)


# Порядок вопросов при заполнении профиля
PROFILE_FLOW = [
    (ParentProfile.first_name, 'first_name', 'Votre prénom :'),
    (ParentProfile.last_name, 'last_name', 'Votre nom :'),
    (ParentProfile.phone_number, 'phone_number', 'Votre numéro de téléphone (ex. 0470 12 34 56) :'),
    (ParentProfile.email, 'email', 'Votre adresse e-mail :'),
    (ParentProfile.address, 'address', 'Votre adresse (rue et numéro) :'),
    (ParentProfile.postal_code, 'postal_code', 'Votre code postal (4 chiffres) :'),
    (ParentProfile.locality, 'locality', 'Votre localité :'),
]


def profile_text(user: User) -> str:
    lines = ["<b>Mon profil</b>\n"]
    for field, label in kb.PROFILE_LABELS.items():
        lines.append(f"{label} : {getattr(user, field) or 'non renseigné'}")
    if not user.is_profile_complete:
        lines.append("\nVotre profil est incomplet. Il doit être complété avant toute inscription.")
    return "\n".join(lines)


@router.message(F.text == 'Mon profil')
async def show_profile(message: Message, user: User):
    """Экран профиля родителя"""
    logger.info(f"Пользователь {message.from_user.id} открыл профиль")
    await message.answer(profile_text(user), reply_markup=kb.profile_menu(user.is_profile_complete))


@router.callback_query(F.data == 'profile_show')
async def show_profile_callback(callback: CallbackQuery, state: FSMContext, user: User):
    await state.clear()
    await callback.answer()
    await callback.message.answer(profile_text(user), reply_markup=kb.profile_menu(user.is_profile_complete))


# ===== ЗАПОЛНЕНИЕ ПРОФИЛЯ =====

@router.callback_query(F.data == 'profile_fill')
async def start_profile_fill(callback: CallbackQuery, state: FSMContext):
    """Начало заполнения профиля"""
    logger.info(f"Пользователь {callback.from_user.id} начал заполнение профиля")
    await state.clear()
    await state.set_state(PROFILE_FLOW[0][0])
    await callback.answer()
    await callback.message.answer(PROFILE_FLOW[0][2])


@router.message(StateFilter(*[step[0] for step in PROFILE_FLOW]), F.text)
async def profile_answer(message: Message, state: FSMContext):
    """Ответ на текущий вопрос профиля"""
    current = await state.get_state()
    index = next(i for i, step in enumerate(PROFILE_FLOW) if step[0].state == current)
    _, field, _ = PROFILE_FLOW[index]

    try:
        value = PROFILE_FIELD_VALIDATORS[field](message.text)
    except ValueError as e:
        logger.debug(f"Пользователь {message.from_user.id}: неверное значение поля {field}")
        await message.answer(f"{e}\nVeuillez réessayer :")
        return

    await state.update_data({field: value})

    if index + 1 < len(PROFILE_FLOW):
        next_state, _, prompt = PROFILE_FLOW[index + 1]
        await state.set_state(next_state)
        await message.answer(prompt)
        return

    data = await state.get_data()
    summary = "\n".join(f"{label} : {data.get(f)}" for f, label in kb.PROFILE_LABELS.items())
    await state.set_state(ParentProfile.confirm)
    await message.answer(f"Vérifiez vos informations :\n\n{summary}", reply_markup=kb.profile_confirm)


@router.callback_query(ParentProfile.confirm, F.data == 'profile_save')
async def save_profile(callback: CallbackQuery, state: FSMContext, user: User):
    """Сохранение профиля. При ошибке введенные данные остаются в FSM"""
    data = await state.get_data()
    try:
        profile = ParentProfileData(**data)
    except ValidationError as e:
        logger.warning(f"Профиль {user.id} не прошел проверку при сохранении: {e}")
        await callback.answer("Certaines informations sont invalides, veuillez recommencer.", show_alert=True)
        return

    async with async_session() as session:
        updated, error = await UserManager(session).save_profile(user.id, profile)

    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await callback.answer("Profil enregistré")
    logger.info(f"Профиль пользователя {callback.from_user.id} сохранен")
    await callback.message.answer(profile_text(updated), reply_markup=kb.profile_menu(updated.is_profile_complete))
    await callback.message.answer("Vous pouvez maintenant inscrire vos enfants.", reply_markup=kb.main)


# ===== РЕДАКТИРОВАНИЕ ПОЛЯ =====

@router.callback_query(F.data.startswith('profile_edit:'))
async def start_field_edit(callback: CallbackQuery, state: FSMContext):
    field = callback.data.split(':')[1]
    if field not in PROFILE_FIELD_VALIDATORS:
        await callback.answer("Champ inconnu", show_alert=True)
        return

    await state.set_state(ProfileFieldEdit.value)
    await state.update_data(edit_field=field)
    await callback.answer()
    await callback.message.answer(f"Nouvelle valeur pour « {kb.PROFILE_LABELS[field]} » :")


@router.message(ProfileFieldEdit.value, F.text)
async def save_field_edit(message: Message, state: FSMContext, user: User):
    data = await state.get_data()
    field = data.get('edit_field')

    async with async_session() as session:
        updated, error = await UserManager(session).update_field(user.id, field, message.text)

    if error:
        await message.answer(f"{error}\nVeuillez réessayer :")
        return

    await state.clear()
    logger.info(f"Пользователь {message.from_user.id} изменил поле {field}")
    await message.answer(profile_text(updated), reply_markup=kb.profile_menu(updated.is_profile_complete))
