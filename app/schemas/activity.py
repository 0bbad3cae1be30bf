"""Pydantic модели каталога стажей"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.schemas.pricing import PriceType
from app.schemas.cart import PriceSnapshot


class ActivityFilters(BaseModel):
    """Фильтры каталога"""
    center_id: Optional[int] = Field(None, description="Центр")
    min_age: Optional[float] = Field(None, ge=0, description="Минимальный возраст")
    max_age: Optional[float] = Field(None, ge=0, description="Максимальный возраст")
    kid_birth_date: Optional[date] = Field(None, description="Дата рождения выбранного ребенка")
    period: Optional[str] = Field(None, description="Период")
    week: Optional[str] = Field(None, description="Неделя")
    reduced_only: bool = Field(False, description="Только сессии со сниженным тарифом")
    limit: Optional[int] = Field(None, gt=0, description="Ограничение количества")

    @model_validator(mode='after')
    def check_age_range(self):
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("L'âge minimum doit être inférieur à l'âge maximum")
        return self


class ActivityOffer(BaseModel):
    """Сессия в каталоге с рассчитанной ценой для ребенка"""
    session_id: int
    stage_title: str
    center_name: str
    start_date: date
    end_date: date
    age_min: float
    age_max: float
    remaining_places: int
    is_full: bool
    period: Optional[str] = None
    week: Optional[str] = None
    price: Optional[Decimal] = None
    price_type: PriceType = PriceType.normal
    prices: PriceSnapshot
    already_registered: bool = False
    on_waiting_list: bool = False
    needs_inclusion: bool = False

    @property
    def can_add_to_cart(self) -> bool:
        return (
            not self.is_full
            and not self.already_registered
            and not self.needs_inclusion
            and self.price is not None
        )
