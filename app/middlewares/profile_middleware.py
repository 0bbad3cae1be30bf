from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery
from typing import Callable, Dict, Any, Awaitable, Optional

from app.database.managers.user_manager import UserManager
from app.database.models import User
from app.database.session import async_session
from app.utils.logging_config import get_logger
from app.user_panel.keyboards import profile_required


logger = get_logger(__name__)

PROFILE_REQUIRED_MESSAGE = (
    "Votre profil est incomplet. Merci de le compléter avant de continuer.\n"
    "Champs manquants : {fields}"
)


async def load_parent(telegram_id: int, first_name: Optional[str] = None, last_name: Optional[str] = None) -> User:
    """Родитель по Telegram ID, новый аккаунт создается при первом обращении"""
    async with async_session() as session:
        return await UserManager(session).get_or_create(telegram_id, first_name, last_name)


class ProfileMiddleware(BaseMiddleware):
    """
    Подставляет родителя в data['user'].

    С require_complete=True пропускает только родителей с заполненным
    профилем, остальных отправляет на экран профиля.
    """

    def __init__(self, require_complete: bool = False):
        self.require_complete = require_complete

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message | CallbackQuery,
        data: Dict[str, Any]
    ) -> Any:
        from_user = event.from_user

        try:
            user = await load_parent(from_user.id, from_user.first_name, from_user.last_name)
        except Exception as e:
            logger.error(f"Ошибка загрузки профиля {from_user.id}: {e}", exc_info=True)
            if isinstance(event, Message):
                await event.answer("Une erreur est survenue. Veuillez réessayer.")
            elif isinstance(event, CallbackQuery):
                await event.answer("Une erreur est survenue. Veuillez réessayer.", show_alert=True)
            return None

        if self.require_complete and not user.is_profile_complete:
            logger.info(f"Родитель {from_user.id} перенаправлен на профиль: {user.missing_profile_fields}")
            text = PROFILE_REQUIRED_MESSAGE.format(fields=", ".join(user.missing_profile_fields))

            if isinstance(event, Message):
                await event.answer(text, reply_markup=profile_required)
            elif isinstance(event, CallbackQuery):
                await event.answer()
                await event.message.answer(text, reply_markup=profile_required)
            return None

        data['user'] = user
        return await handler(event, data)
