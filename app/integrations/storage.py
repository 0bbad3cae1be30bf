"""
HTTP клиент хранилища фотографий детей.

Загрузка с перезаписью и подписанные ссылки на ограниченное время.
Подписанная ссылка запрашивается с повторами и экспоненциальной паузой.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Ошибка обращения к хранилищу"""


class StorageClient:
    """Клиент REST API хранилища (/storage/v1)"""

    def __init__(
        self,
        base_url: str = settings.STORAGE_URL,
        api_key: str = settings.STORAGE_KEY,
        bucket: str = settings.PHOTO_BUCKET,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/storage/v1",
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "apikey": self.api_key or "",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            client = await self._get_client()
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json() if response.content else {}

        except httpx.HTTPStatusError as e:
            logger.error(f"Хранилище вернуло {e.response.status_code} на {method} {path}")
            raise StorageError(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ошибка обращения к хранилищу {method} {path}: {e}")
            raise StorageError(str(e)) from e

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Загрузить файл (существующий перезаписывается)

        Returns:
            Путь файла в бакете

        Raises:
            StorageError: при любой ошибке загрузки
        """
        logger.info(f"Загрузка файла {self.bucket}/{path} ({len(data)} байт)")
        await self._request(
            "POST",
            f"/object/{self.bucket}/{path}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        return path

    async def create_signed_url(
        self,
        path: str,
        expires_in: int = settings.SIGNED_URL_TTL,
        max_retries: int = 3,
        delay: float = 1.0
    ) -> Optional[str]:
        """
        Подписанная ссылка на файл

        Между попытками пауза delay * 2**attempt. После последней
        неудачи возвращается None, ошибка только логируется.
        """
        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Подпись {path}: попытка {retry_state.attempt_number} неудачна "
                f"({retry_state.outcome.exception()}), повтор через {retry_state.next_action.sleep} с"
            )

        signed = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_retries),
                wait=wait_exponential(multiplier=delay),
                retry=retry_if_exception_type(StorageError),
                sleep=asyncio.sleep,
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    payload = await self._request(
                        "POST",
                        f"/object/sign/{self.bucket}/{path}",
                        json={"expiresIn": expires_in},
                    )
                    signed = payload.get("signedURL") or payload.get("signedUrl")
                    if not signed:
                        raise StorageError("Пустой ответ подписи")
        except StorageError as e:
            logger.error(f"Не удалось подписать {path} после {max_retries} попыток: {e}")
            return None

        return signed if signed.startswith("http") else f"{self.base_url}/storage/v1{signed}"
