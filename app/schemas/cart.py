"""Pydantic модели корзины и тарифов"""

from datetime import date
from decimal import Decimal
from typing import Optional, Any

from pydantic import BaseModel, Field

from app.schemas.pricing import PriceType


class PriceSnapshot(BaseModel):
    """Все тарифы сессии и право на местный тариф на момент добавления"""
    normal: Optional[Decimal] = Field(None, description="Обычная цена")
    reduced: Optional[Decimal] = Field(None, description="Сниженная цена")
    local: Optional[Decimal] = Field(None, description="Местная цена")
    local_reduced: Optional[Decimal] = Field(None, description="Местная сниженная цена")
    local_eligible: bool = Field(False, description="Применим ли местный тариф")

    @classmethod
    def from_session(cls, session: Any, local_eligible: bool) -> "PriceSnapshot":
        return cls(
            normal=session.price_normal,
            reduced=session.price_reduced,
            local=session.price_local,
            local_reduced=session.price_local_reduced,
            local_eligible=local_eligible,
        )

    def amount_for(self, price_type: PriceType) -> Optional[Decimal]:
        return getattr(self, price_type.value)


class CartItem(BaseModel):
    """Позиция корзины: пара (сессия, ребенок) с денормализованными данными"""
    activity_id: int = Field(..., description="ID сессии")
    kid_id: int = Field(..., description="ID ребенка")
    kid_name: str = Field(..., description="Имя ребенка")
    activity_name: str = Field(..., description="Название стажа")
    center_name: Optional[str] = Field(None, description="Центр")
    start_date: date = Field(..., description="Начало")
    end_date: date = Field(..., description="Окончание")
    price: Decimal = Field(..., ge=0, description="Текущая цена позиции")
    price_type: PriceType = Field(PriceType.normal, description="Примененный тариф")
    prices: PriceSnapshot = Field(..., description="Снимок тарифов")

    @property
    def id(self) -> str:
        return make_item_id(self.activity_id, self.kid_id)


def make_item_id(activity_id: int, kid_id: int) -> str:
    """Составной идентификатор позиции"""
    return f"{activity_id}-{kid_id}"
