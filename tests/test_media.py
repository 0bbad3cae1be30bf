import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramRetryAfter

from app.utils.media import send_photo_with_retry


@pytest.mark.asyncio
class TestSendPhotoWithRetry:
    """Тесты отправки фото с повторами."""

    async def test_sent_first_time(self, mock_message):
        sent = MagicMock()
        mock_message.answer_photo = AsyncMock(return_value=sent)

        result = await send_photo_with_retry(mock_message, "https://cdn.example.org/5.jpg", caption="Léa")

        assert result is sent
        mock_message.answer_photo.assert_awaited_once_with(
            photo="https://cdn.example.org/5.jpg", caption="Léa", reply_markup=None
        )

    async def test_retry_with_backoff(self, mock_message):
        """Сетевые ошибки повторяются с паузой delay * 2**attempt."""
        sent = MagicMock()
        mock_message.answer_photo = AsyncMock(side_effect=[
            TelegramNetworkError(method=MagicMock(), message="reset"),
            asyncio.TimeoutError(),
            sent,
        ])

        with patch('app.utils.media.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await send_photo_with_retry(mock_message, "photo", delay=0.5)

        assert result is sent
        assert [call.args[0] for call in mock_sleep.await_args_list] == [0.5, 1.0]

    async def test_retry_after(self, mock_message):
        """Лимит Telegram: ожидание retry_after."""
        sent = MagicMock()
        mock_message.answer_photo = AsyncMock(side_effect=[
            TelegramRetryAfter(method=MagicMock(), message="flood", retry_after=3),
            sent,
        ])

        with patch('app.utils.media.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await send_photo_with_retry(mock_message, "photo")

        assert result is sent
        mock_sleep.assert_awaited_once_with(3)

    async def test_bad_request_not_retried(self, mock_message):
        mock_message.answer_photo = AsyncMock(
            side_effect=TelegramBadRequest(method=MagicMock(), message="wrong file identifier")
        )

        with patch('app.utils.media.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await send_photo_with_retry(mock_message, "photo")

        assert result is None
        assert mock_message.answer_photo.await_count == 1
        mock_sleep.assert_not_awaited()

    async def test_gives_up(self, mock_message):
        mock_message.answer_photo = AsyncMock(
            side_effect=TelegramNetworkError(method=MagicMock(), message="down")
        )

        with patch('app.utils.media.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await send_photo_with_retry(mock_message, "photo", max_retries=3)

        assert result is None
        assert mock_message.answer_photo.await_count == 3
        assert mock_sleep.await_count == 2
