from aiogram import F, Router
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

import app.user_panel.keyboards as kb
from app.utils.logging_config import get_logger

router = Router(name="fallback")

logger = get_logger(__name__)


@router.callback_query(F.data == 'no_action')
async def disabled_button(callback: CallbackQuery):
    """Неактивная кнопка: шаг анкеты недоступен или позиция уже в корзине"""
    logger.debug(f"Пользователь {callback.from_user.id} нажал неактивную кнопку")
    await callback.answer("Cette option n'est pas disponible pour le moment")


@router.message(F.content_type.in_({'photo', 'video', 'document', 'sticker', 'voice'}))
async def unsupported_content(message: Message):
    """Медиа вне шага анкеты с фото"""
    logger.info(f"Неподдерживаемый контент от пользователя {message.from_user.id}: тип={message.content_type}")
    await message.answer(
        "Je ne peux pas traiter ce contenu ici. Utilisez les boutons du menu.",
        reply_markup=kb.main
    )


@router.callback_query()
async def unknown_callback(callback: CallbackQuery, state: FSMContext):
    """Устаревшая кнопка или потерянное состояние. Корзина не затрагивается"""
    logger.warning(
        f"Неизвестный колбэк от пользователя {callback.from_user.id}: data='{callback.data}', "
        f"состояние={await state.get_state()}"
    )
    try:
        await callback.answer("Cette action n'est plus disponible", show_alert=True)
        await state.clear()
        await callback.message.answer("Choisissez une rubrique dans le menu.", reply_markup=kb.main)
    except Exception as e:
        logger.error(f"Ошибка обработки неизвестного колбэка: {e}", exc_info=True)


@router.message()
async def unknown_message(message: Message, state: FSMContext):
    """Текст вне сценария"""
    current_state = await state.get_state()
    logger.warning(
        f"Неизвестное сообщение от пользователя {message.from_user.id}: "
        f"text='{message.text}', состояние={current_state}"
    )
    if current_state:
        await message.answer("Veuillez répondre à la question en cours ou utiliser les boutons.")
        return
    await message.answer("Je n'ai pas compris. Utilisez les boutons du menu.", reply_markup=kb.main)
