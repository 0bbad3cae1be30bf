"""
Анкета ребенка в боте.

Один роутер обслуживает все шаги: вопросы берутся из STEP_FIELDS, ответы
текущего шага копятся в FSM, по завершении шага раздел проверяется и
передается в IntakeWizard. Завершение последнего шага (или кнопка
сохранения в режиме редактирования) сохраняет анкету через KidManager.
"""

from typing import Any, Dict, Optional

from aiogram import Bot, Router, F
from aiogram.filters import StateFilter
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.database.managers.kid_manager import KidManager
from app.database.models import User
from app.database.session import async_session
from app.database.unit_of_work import UnitOfWork
from app.integrations.storage import StorageClient
from app.middlewares.profile_middleware import ProfileMiddleware
from app.user_panel.intake_forms import (
    STEP_FIELDS, BOOL, CHOICE, MULTI, PHOTO, SCHOOL, FormField,
    next_field_index, prune_answers, parse_text_answer, format_answer
)
from app.user_panel.states import KidIntake
from app.utils.intake_wizard import (
    IntakeWizard, StepResult, StepValidationError, Submitter, WizardNavigationError, WizardStep,
    STEP_ORDER, STEP_TITLES
)
from app.utils.validation import validate_photo_mime
from app.utils.logging_config import get_logger


router = Router(name="kid_intake")
router.message.middleware(ProfileMiddleware(require_complete=True))
router.callback_query.middleware(ProfileMiddleware(require_complete=True))

logger = get_logger(__name__)


def make_submitter(bot: Bot, user: User, photo_storage: Optional[StorageClient]) -> Submitter:
    """Сохранение анкеты: фото скачивается из Telegram и уходит в хранилище"""

    async def submit(draft: Dict[str, Dict[str, Any]], kid_id: Optional[int]) -> int:
        photo = None
        file_id = draft['personal'].get('photo_file_id')
        if file_id and photo_storage is None:
            logger.warning(f"Хранилище фото не настроено, фото пользователя {user.telegram_id} не загружается")
        elif file_id:
            downloaded = await bot.download(file_id)
            photo = downloaded.read()

        async with async_session() as session:
            return await KidManager(session, photo_storage).save_intake(user.id, draft, kid_id=kid_id, photo=photo)

    return submit


async def begin_submit(state: FSMContext) -> bool:
    """Отметить начало сохранения анкеты. False, если сохранение уже идет"""
    data = await state.get_data()
    if data.get('submitting'):
        return False
    await state.update_data(submitting=True)
    return True


async def _field_options(form_field: FormField, user: User) -> Dict[int, str]:
    """Варианты для вопросов с выбором из БД"""
    if form_field.kind not in (SCHOOL, MULTI):
        return {}

    async with UnitOfWork(async_session()) as uow:
        if form_field.kind == SCHOOL:
            schools = await uow.schools.get_active()
            return {school.id: school.name for school in schools}
        persons = await uow.authorized_persons.list_for_user(user.id)
        return {person.id: str(person) for person in persons}


# ===== ВОПРОСЫ =====

async def ask_field(message: Message, state: FSMContext, user: User) -> None:
    """Задать текущий вопрос текущего шага"""
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    step = wizard.current
    index = data['field_index']
    answers = data.get('answers', {})
    form_field = STEP_FIELDS[step][index]
    options = await _field_options(form_field, user)

    position = STEP_ORDER.index(step) + 1
    lines = [f"<b>Étape {position}/{len(STEP_ORDER)} : {STEP_TITLES[step]}</b>", "", form_field.label]
    current_value = answers.get(form_field.name)
    if current_value is not None:
        lines.append(f"Valeur actuelle : {format_answer(form_field, current_value, options)}")
    if form_field.kind == MULTI and not options:
        lines.append("Aucune personne autorisée. Ajoutez-en une depuis « Mon profil ».")

    if form_field.kind == PHOTO:
        await state.set_state(KidIntake.photo)
    elif form_field.is_button_answer:
        await state.set_state(KidIntake.choice)
    else:
        await state.set_state(KidIntake.field)

    keyboard = kb.wizard_question(
        form_field.kind,
        form_field.optional,
        choices=form_field.choices,
        options=options,
        selected=(current_value or []) if form_field.kind == MULTI else [],
        can_keep=current_value is not None,
    )
    await message.answer("\n".join(lines), reply_markup=keyboard)


async def start_step(message: Message, state: FSMContext, wizard: IntakeWizard, user: User) -> None:
    """Начать текущий шаг с первого применимого вопроса"""
    answers = wizard.section(wizard.current)
    await state.update_data(
        wizard=wizard.to_dict(),
        answers=answers,
        field_index=next_field_index(wizard.current, answers, 0),
    )
    await ask_field(message, state, user)


async def show_steps(message: Message, state: FSMContext, wizard: IntakeWizard) -> None:
    await state.update_data(wizard=wizard.to_dict())
    await state.set_state(KidIntake.review)
    text = "Choisissez une étape à compléter ou à modifier."
    if wizard.edit_mode:
        text += "\nAppuyez sur « Enregistrer la fiche » pour sauvegarder vos modifications."
    await message.answer(text, reply_markup=kb.wizard_steps(wizard))


async def record_answer(
    message: Message,
    state: FSMContext,
    user: User,
    photo_storage: Optional[StorageClient],
    **values: Any
) -> None:
    """Сохранить ответ и перейти к следующему вопросу или завершить шаг"""
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    step = wizard.current
    answers = dict(data.get('answers', {}))
    answers.update(values)
    answers = prune_answers(step, answers)

    next_index = next_field_index(step, answers, data['field_index'] + 1)
    if next_index is None:
        await state.update_data(answers=answers)
        await finish_step(message, state, user, photo_storage)
        return

    await state.update_data(answers=answers, field_index=next_index)
    await ask_field(message, state, user)


async def finish_step(message: Message, state: FSMContext, user: User, photo_storage: Optional[StorageClient]) -> None:
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'], submitter=make_submitter(message.bot, user, photo_storage))
    step = wizard.current
    answers = data.get('answers', {})

    if wizard.is_last_step and not await begin_submit(state):
        await message.answer("Enregistrement en cours, veuillez patienter.")
        return

    try:
        result = await wizard.complete_step(step, answers)
    except StepValidationError as e:
        await state.update_data(submitting=False)
        await message.answer("Veuillez corriger les points suivants :\n" + "\n".join(f"- {err}" for err in e.errors))
        await state.update_data(field_index=next_field_index(step, answers, 0))
        await ask_field(message, state, user)
        return
    except WizardNavigationError as e:
        await state.update_data(submitting=False)
        await message.answer(str(e))
        await show_steps(message, state, wizard)
        return

    await handle_result(message, state, wizard, result, user, photo_storage)


async def handle_result(
    message: Message,
    state: FSMContext,
    wizard: IntakeWizard,
    result: StepResult,
    user: User,
    photo_storage: Optional[StorageClient] = None
) -> None:
    if result == StepResult.submitted:
        personal = wizard.data['personal']
        logger.info(f"Пользователь {user.telegram_id} сохранил анкету ребенка {wizard.kid_id}")
        await state.clear()
        await message.answer(f"La fiche de {personal.get('first_name', '')} est enregistrée.", reply_markup=kb.main)
        if personal.get('photo_file_id') and photo_storage is None:
            await message.answer("La photo n'a pas pu être enregistrée : le stockage des photos est indisponible.")
        async with async_session() as session:
            kids = await KidManager(session).list_kids(user.id)
        await message.answer("<b>Mes enfants</b>", reply_markup=kb.kids_menu(kids))
        return

    if result == StepResult.submit_failed:
        await state.update_data(wizard=wizard.to_dict(), submitting=False)
        await state.set_state(KidIntake.review)
        await message.answer(wizard.submit_error, reply_markup=kb.wizard_retry())
        return

    if wizard.edit_mode:
        await show_steps(message, state, wizard)
    else:
        await start_step(message, state, wizard, user)


# ===== ЗАПУСК =====

@router.callback_query(F.data == 'kid_new')
async def new_kid(callback: CallbackQuery, state: FSMContext, user: User):
    """Новая анкета ребенка"""
    logger.info(f"Пользователь {callback.from_user.id} начал анкету нового ребенка")
    await state.clear()
    await callback.answer()
    await start_step(callback.message, state, IntakeWizard(), user)


@router.callback_query(F.data.startswith('kid_edit:'))
async def edit_kid(callback: CallbackQuery, state: FSMContext, user: User):
    """Редактирование анкеты: все шаги доступны"""
    kid_id = int(callback.data.split(':')[1])
    try:
        async with async_session() as session:
            kid = await KidManager(session).get_kid(user.id, kid_id)
            if kid is None:
                await callback.answer("Enfant introuvable", show_alert=True)
                return
            draft = KidManager.draft_from_kid(kid)
    except Exception as e:
        logger.error(f"Ошибка загрузки анкеты ребенка {kid_id}: {e}", exc_info=True)
        await callback.answer("Une erreur est survenue. Veuillez réessayer.", show_alert=True)
        return

    wizard = IntakeWizard.for_existing(kid_id, draft)
    await state.clear()
    await callback.answer()
    missing = wizard.missing_steps()
    if missing:
        await callback.message.answer(
            "Étapes à compléter avant l'enregistrement : " + ", ".join(STEP_TITLES[s] for s in missing)
        )
    await show_steps(callback.message, state, wizard)


# ===== НАВИГАЦИЯ =====

@router.callback_query(StateFilter(KidIntake), F.data.startswith('wiz_goto:'))
async def go_to_step(callback: CallbackQuery, state: FSMContext, user: User):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    try:
        wizard.go_to(WizardStep(callback.data.split(':')[1]))
    except (WizardNavigationError, ValueError) as e:
        await callback.answer(str(e), show_alert=True)
        return

    await callback.answer()
    await start_step(callback.message, state, wizard, user)


@router.callback_query(StateFilter(KidIntake), F.data == 'wiz_steps')
async def steps_menu(callback: CallbackQuery, state: FSMContext):
    data = await state.get_data()
    await callback.answer()
    await show_steps(callback.message, state, IntakeWizard.from_dict(data['wizard']))


@router.callback_query(StateFilter(KidIntake), F.data.in_({'wiz_save', 'wiz_submit'}))
async def submit_wizard(callback: CallbackQuery, state: FSMContext, user: User,
                        photo_storage: Optional[StorageClient] = None):
    """Отправка анкеты: сохранение в режиме редактирования или повтор после ошибки"""
    if not await begin_submit(state):
        await callback.answer("Enregistrement en cours, veuillez patienter.")
        return

    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'], submitter=make_submitter(callback.bot, user, photo_storage))
    try:
        result = await wizard.submit()
    except WizardNavigationError as e:
        await state.update_data(submitting=False)
        await callback.answer(str(e), show_alert=True)
        return

    await callback.answer()
    await handle_result(callback.message, state, wizard, result, user, photo_storage)


@router.callback_query(StateFilter(KidIntake), F.data == 'wiz_cancel')
async def cancel_wizard(callback: CallbackQuery, state: FSMContext):
    logger.info(f"Пользователь {callback.from_user.id} вышел из анкеты")
    await state.clear()
    await callback.answer()
    await callback.message.answer("Saisie interrompue. Les modifications non enregistrées sont perdues.",
                                  reply_markup=kb.main)


# ===== ОТВЕТЫ =====

@router.message(KidIntake.field, F.text)
async def text_answer(message: Message, state: FSMContext, user: User, photo_storage: Optional[StorageClient] = None):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    try:
        value = parse_text_answer(form_field, message.text)
    except ValueError as e:
        await message.answer(f"{e}\nVeuillez réessayer :")
        return
    if not value and not form_field.optional:
        await message.answer("Ce champ est requis. Veuillez répondre :")
        return

    await record_answer(message, state, user, photo_storage, **{form_field.name: value or None})


@router.callback_query(KidIntake.choice, F.data.startswith('wiz_answer:'))
async def bool_answer(callback: CallbackQuery, state: FSMContext, user: User,
                      photo_storage: Optional[StorageClient] = None):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    if form_field.kind != BOOL:
        await callback.answer()
        return

    await callback.answer()
    await record_answer(callback.message, state, user, photo_storage,
                        **{form_field.name: callback.data.split(':')[1] == 'yes'})


@router.callback_query(KidIntake.choice, F.data.startswith('wiz_choice:'))
async def choice_answer(callback: CallbackQuery, state: FSMContext, user: User,
                        photo_storage: Optional[StorageClient] = None):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    raw = int(callback.data.split(':')[1])

    if form_field.kind == CHOICE:
        if raw >= len(form_field.choices):
            await callback.answer("Choix invalide", show_alert=True)
            return
        value = form_field.choices[raw]
    elif form_field.kind == SCHOOL:
        value = raw
    else:
        await callback.answer()
        return

    await callback.answer()
    await record_answer(callback.message, state, user, photo_storage, **{form_field.name: value})


@router.callback_query(KidIntake.choice, F.data.startswith('wiz_toggle:'))
async def toggle_option(callback: CallbackQuery, state: FSMContext, user: User):
    """Отметить или снять вариант множественного выбора"""
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    option_id = int(callback.data.split(':')[1])

    answers = dict(data.get('answers', {}))
    selected = list(answers.get(form_field.name) or [])
    if option_id in selected:
        selected.remove(option_id)
    else:
        selected.append(option_id)
    answers[form_field.name] = selected
    await state.update_data(answers=answers)

    options = await _field_options(form_field, user)
    await callback.answer()
    await callback.message.edit_reply_markup(
        reply_markup=kb.wizard_question(form_field.kind, form_field.optional, options=options, selected=selected)
    )


@router.callback_query(KidIntake.choice, F.data == 'wiz_multi_done')
async def multi_done(callback: CallbackQuery, state: FSMContext, user: User,
                     photo_storage: Optional[StorageClient] = None):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    selected = data.get('answers', {}).get(form_field.name) or []

    await callback.answer()
    await record_answer(callback.message, state, user, photo_storage, **{form_field.name: selected})


@router.message(KidIntake.photo, F.photo)
async def photo_answer(message: Message, state: FSMContext, user: User, photo_storage: Optional[StorageClient] = None):
    """Фото из Telegram всегда приходит в JPEG"""
    await record_answer(message, state, user, photo_storage,
                        photo_file_id=message.photo[-1].file_id, photo_mime='image/jpeg')


@router.message(KidIntake.photo, F.document)
async def photo_document_answer(message: Message, state: FSMContext, user: User,
                                photo_storage: Optional[StorageClient] = None):
    mime_type = message.document.mime_type
    try:
        validate_photo_mime(mime_type)
    except ValueError as e:
        await message.answer(str(e))
        return

    await record_answer(message, state, user, photo_storage,
                        photo_file_id=message.document.file_id, photo_mime=mime_type)


@router.callback_query(StateFilter(KidIntake.field, KidIntake.choice, KidIntake.photo), F.data == 'wiz_skip')
async def skip_field(callback: CallbackQuery, state: FSMContext, user: User,
                     photo_storage: Optional[StorageClient] = None):
    data = await state.get_data()
    wizard = IntakeWizard.from_dict(data['wizard'])
    form_field = STEP_FIELDS[wizard.current][data['field_index']]
    if not form_field.optional:
        await callback.answer("Ce champ est requis", show_alert=True)
        return

    values = {form_field.name: None}
    if form_field.kind == PHOTO:
        values['photo_mime'] = None
    await callback.answer()
    await record_answer(callback.message, state, user, photo_storage, **values)


@router.callback_query(StateFilter(KidIntake.field, KidIntake.choice, KidIntake.photo), F.data == 'wiz_keep')
async def keep_field(callback: CallbackQuery, state: FSMContext, user: User,
                     photo_storage: Optional[StorageClient] = None):
    """Оставить сохраненное значение и перейти дальше"""
    await callback.answer()
    await record_answer(callback.message, state, user, photo_storage)


@router.message(KidIntake.choice)
@router.message(KidIntake.photo)
async def unexpected_input(message: Message, state: FSMContext):
    current = await state.get_state()
    if current == KidIntake.photo.state:
        await message.answer("Envoyez une photo (JPEG ou PNG) ou utilisez les boutons.")
    else:
        await message.answer("Veuillez répondre avec les boutons ci-dessus.")
