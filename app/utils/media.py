"""
Отправка изображений пользователю с повторными попытками.
"""

import asyncio
from typing import Optional

from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramRetryAfter
from aiogram.types import InlineKeyboardMarkup, Message
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class _TelegramWait:
    """Пауза: retry_after при лимите Telegram, иначе экспоненциальная"""

    def __init__(self, delay: float):
        self.backoff = wait_exponential(multiplier=delay)

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        if isinstance(error, TelegramRetryAfter):
            return error.retry_after
        return self.backoff(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception()
    if isinstance(error, TelegramRetryAfter):
        logger.warning(f"Лимит Telegram при отправке фото, ждем {error.retry_after} с")
    else:
        logger.warning(f"Попытка {retry_state.attempt_number} отправки фото не удалась: {error}")


async def send_photo_with_retry(
    message: Message,
    photo: str,
    caption: Optional[str] = None,
    reply_markup: Optional[InlineKeyboardMarkup] = None,
    max_retries: int = 3,
    delay: float = 1.0
) -> Optional[Message]:
    """
    Отправить фото (URL или file_id) с экспоненциальной паузой между попытками

    Returns:
        Отправленное сообщение или None, если все попытки неудачны.
        Неверный запрос (битая ссылка, неподдерживаемый файл) не повторяется.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=_TelegramWait(delay),
            retry=(
                retry_if_exception_type((TelegramAPIError, asyncio.TimeoutError))
                & retry_if_not_exception_type(TelegramBadRequest)
            ),
            sleep=asyncio.sleep,
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                sent = await message.answer_photo(photo=photo, caption=caption, reply_markup=reply_markup)
    except TelegramBadRequest as e:
        logger.warning(f"Фото не принято Telegram: {e}")
        return None
    except (TelegramAPIError, asyncio.TimeoutError) as e:
        logger.error(f"Фото не отправлено после {max_retries} попыток: {e}")
        return None

    return sent
