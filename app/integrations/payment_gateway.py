"""
Клиент внешней функции оплаты.
Возвращает ссылку на страницу оплаты, сами платежи вне портала.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.utils.logging_config import get_logger

logger = get_logger("app.routers.user.checkout.gateway")


class PaymentGatewayError(Exception):
    """Сервис оплаты недоступен или отклонил запрос"""


@dataclass
class CheckoutSession:
    url: str
    session_id: Optional[str] = None


class PaymentGateway:
    """POST на функцию создания сессии оплаты"""

    def __init__(
        self,
        checkout_url: str = settings.PAYMENT_CHECKOUT_URL,
        api_key: str = settings.PAYMENT_API_KEY,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.checkout_url = checkout_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def create_checkout(
        self,
        user_id: int,
        email: Optional[str],
        items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str
    ) -> CheckoutSession:
        """
        Создать сессию оплаты

        Raises:
            PaymentGatewayError: ошибка сети, HTTP или ответ без ссылки
        """
        if not self.checkout_url:
            raise PaymentGatewayError("Paiement en ligne indisponible")

        body = {
            "user_id": user_id,
            "email": email,
            "items": items,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        logger.info(f"Создание сессии оплаты: пользователь {user_id}, позиций {len(items)}")

        try:
            client = await self._get_client()
            response = await client.post(self.checkout_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Сервис оплаты вернул {e.response.status_code}")
            raise PaymentGatewayError(f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ошибка обращения к сервису оплаты: {e}")
            raise PaymentGatewayError(str(e)) from e

        if payload.get("error"):
            logger.error(f"Сервис оплаты отклонил запрос: {payload['error']}")
            raise PaymentGatewayError(str(payload["error"]))
        if not payload.get("url"):
            raise PaymentGatewayError("Réponse du service de paiement sans URL")

        logger.info(f"Сессия оплаты создана: {payload.get('sessionId')}")
        return CheckoutSession(url=payload["url"], session_id=payload.get("sessionId"))
