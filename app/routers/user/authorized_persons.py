from typing import Sequence

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.database.managers.user_manager import UserManager
from app.database.models import AuthorizedPerson, User
from app.database.session import async_session
from app.middlewares.profile_middleware import ProfileMiddleware
from app.schemas.user import AuthorizedPersonData
from app.user_panel.states import AuthorizedPersonForm
from app.utils.validation import validate_name, validate_phone, validate_required
from app.utils.logging_config import get_logger


router = Router(name="authorized_persons")
router.message.middleware(ProfileMiddleware())
router.callback_query.middleware(ProfileMiddleware())

logger = get_logger(__name__)


PERSON_FLOW = [
    (AuthorizedPersonForm.first_name, 'first_name', validate_name, 'Prénom de la personne :'),
    (AuthorizedPersonForm.last_name, 'last_name', validate_name, 'Nom de la personne :'),
    (AuthorizedPersonForm.phone_number, 'phone_number', validate_phone, 'Téléphone de la personne :'),
    (AuthorizedPersonForm.relationship_label, 'relationship_label', validate_required,
     'Lien avec l\'enfant (ex. grand-mère, voisin) :'),
]


def persons_text(persons: Sequence[AuthorizedPerson]) -> str:
    if not persons:
        return "Aucune personne autorisée à venir chercher vos enfants."
    lines = ["<b>Personnes autorisées</b>\n"]
    for person in persons:
        lines.append(f"{person} - {person.phone_number}")
    return "\n".join(lines)


@router.callback_query(F.data == 'persons_list')
async def list_persons(callback: CallbackQuery, state: FSMContext, user: User):
    """Список доверенных лиц"""
    await state.clear()
    async with async_session() as session:
        persons = await UserManager(session).list_authorized_persons(user.id)
    await callback.answer()
    await callback.message.answer(persons_text(persons), reply_markup=kb.authorized_persons_menu(persons))


@router.callback_query(F.data == 'person_add')
async def start_add_person(callback: CallbackQuery, state: FSMContext):
    logger.info(f"Пользователь {callback.from_user.id} добавляет доверенное лицо")
    await state.set_state(PERSON_FLOW[0][0])
    await callback.answer()
    await callback.message.answer(PERSON_FLOW[0][3])


@router.message(AuthorizedPersonForm.first_name, F.text)
@router.message(AuthorizedPersonForm.last_name, F.text)
@router.message(AuthorizedPersonForm.phone_number, F.text)
@router.message(AuthorizedPersonForm.relationship_label, F.text)
async def person_answer(message: Message, state: FSMContext, user: User):
    current = await state.get_state()
    index = next(i for i, step in enumerate(PERSON_FLOW) if step[0].state == current)
    _, field, validator, _ = PERSON_FLOW[index]

    try:
        value = validator(message.text)
    except ValueError as e:
        await message.answer(f"{e}\nVeuillez réessayer :")
        return

    await state.update_data({field: value})
    if index + 1 < len(PERSON_FLOW):
        next_state, _, _, prompt = PERSON_FLOW[index + 1]
        await state.set_state(next_state)
        await message.answer(prompt)
        return

    data = await state.get_data()
    person = AuthorizedPersonData(**{step[1]: data[step[1]] for step in PERSON_FLOW})

    async with async_session() as session:
        persons, error = await UserManager(session).add_authorized_person(user.id, person)

    if error:
        await message.answer(error, reply_markup=kb.authorized_persons_menu(persons))
        return

    await state.clear()
    await message.answer(persons_text(persons), reply_markup=kb.authorized_persons_menu(persons))


@router.callback_query(F.data.startswith('person_delete:'))
async def delete_person(callback: CallbackQuery, user: User):
    person_id = int(callback.data.split(':')[1])
    async with async_session() as session:
        persons, error = await UserManager(session).delete_authorized_person(user.id, person_id)

    if error:
        await callback.answer(error, show_alert=True)
    else:
        await callback.answer("Personne supprimée")
        logger.info(f"Пользователь {callback.from_user.id} удалил доверенное лицо {person_id}")
    await callback.message.edit_text(persons_text(persons), reply_markup=kb.authorized_persons_menu(persons))
