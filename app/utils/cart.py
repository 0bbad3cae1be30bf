"""
Корзина родителя: пары (сессия, ребенок) со снимком тарифов.
Хранится в хранилище FSM бота под отдельным ключом, не в БД.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from pydantic import ValidationError

from app.schemas.pricing import PriceType
from app.schemas.cart import CartItem
from app.utils.calculators import PriceSelector
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

CART_DESTINY = "cart"


class Cart:
    """Агрегатор корзины"""

    def __init__(self, items: Optional[List[CartItem]] = None, reduced_declaration: bool = False):
        self.items: List[CartItem] = list(items or [])
        self.reduced_declaration = reduced_declaration

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: str) -> bool:
        return any(item.id == item_id for item in self.items)

    def get(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add_item(self, item: Union[CartItem, Dict[str, Any]]) -> bool:
        """
        Добавить позицию

        Returns:
            True если позиция добавлена. Позиция без сессии или ребенка и
            дубликат по составному ключу отклоняются
        """
        if isinstance(item, dict):
            if not item.get('activity_id') or not item.get('kid_id'):
                logger.warning(f"Позиция корзины без activity_id или kid_id отклонена: {item}")
                return False
            try:
                item = CartItem.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Некорректная позиция корзины отклонена: {e}")
                return False

        if item.id in self:
            logger.info(f"Позиция {item.id} уже в корзине")
            return False

        self.items.append(item)
        logger.info(f"Позиция {item.id} добавлена в корзину, цена {item.price} ({item.price_type.value})")
        return True

    def remove_item(self, item_id: str) -> bool:
        before = len(self.items)
        self.items = [item for item in self.items if item.id != item_id]
        removed = len(self.items) < before
        if removed:
            logger.info(f"Позиция {item_id} удалена из корзины")
        return removed

    def clear(self) -> None:
        self.items = []
        self.reduced_declaration = False
        logger.info("Корзина очищена")

    def update_price_type(self, requested: PriceType) -> None:
        """
        Пересчитать тариф каждой позиции по ее снимку тарифов.

        Местная составляющая определяется снимком, поэтому переключение
        сниженный/обычный не теряет местную скидку. Цена и тариф позиции
        меняются вместе.
        """
        for index, item in enumerate(self.items):
            amount, price_type = PriceSelector.select_for(item.prices, requested)
            if amount is None:
                logger.warning(f"Позиция {item.id}: нет цены для тарифа {requested.value}, оставлена без изменений")
                continue
            self.items[index] = item.model_copy(update={'price': amount, 'price_type': price_type})

        logger.debug(f"Тарифы корзины пересчитаны: {requested.value}")

    def set_reduced_declaration(self, declared: bool) -> None:
        """Декларация на сниженный тариф с пересчетом всех позиций"""
        self.reduced_declaration = declared
        self.update_price_type(PriceType.reduced if declared else PriceType.normal)

    def total(self) -> Decimal:
        return sum((item.price for item in self.items), Decimal('0'))

    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': [item.model_dump(mode='json') for item in self.items],
            'reduced_declaration': self.reduced_declaration,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Cart":
        data = data or {}
        items = []
        for raw in data.get('items', []):
            try:
                items.append(CartItem.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Позиция корзины из хранилища пропущена: {e}")
        return cls(items=items, reduced_declaration=bool(data.get('reduced_declaration', False)))


# ===== ХРАНЕНИЕ =====


def _cart_key(state: FSMContext) -> StorageKey:
    """Ключ корзины: тот же чат и пользователь, отдельный destiny"""
    return replace(state.key, destiny=CART_DESTINY)


async def load_cart(state: FSMContext) -> Cart:
    """Загрузить корзину пользователя"""
    data = await state.storage.get_data(key=_cart_key(state))
    return Cart.from_dict(data)


async def save_cart(state: FSMContext, cart: Cart) -> None:
    """Сохранить корзину. Сброс FSM-состояния корзину не затрагивает"""
    await state.storage.set_data(key=_cart_key(state), data=cart.to_dict())
    logger.debug(f"Корзина сохранена: {cart.item_count()} поз., итого {cart.total()}")
