"""
Калькуляторы возраста, права на местный тариф и выбора цены.
Чистые функции без обращения к БД, кроме TariffResolver.resolve.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Tuple

from app.schemas.pricing import PriceType
from app.schemas.cart import PriceSnapshot
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


# ===== ВОЗРАСТ =====


def age_at_date(birth_date: date, reference_date: date) -> float:
    """
    Дробный возраст на дату с точностью до десятых.

    Полные годы плюс разница месяцев / 12. Если месяц еще не наступил
    (или наступил, но день месяца раньше дня рождения), год заимствуется.
    Округление половины вверх.
    """
    years = reference_date.year - birth_date.year
    months = reference_date.month - birth_date.month

    if months < 0 or (months == 0 and reference_date.day < birth_date.day):
        years -= 1
        months += 12

    age = Decimal(years) + Decimal(months) / Decimal(12)
    return float(age.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def is_age_eligible(age: float, age_min: float, age_max: float) -> bool:
    """Ребенок подходит, если age_min <= возраст < age_max + 1"""
    return age >= age_min and age < age_max + 1


def is_kid_eligible(birth_date: date, session: Any) -> bool:
    """Подходит ли ребенок для сессии по возрасту на дату начала"""
    age = age_at_date(birth_date, session.start_date)
    eligible = is_age_eligible(age, session.stage.age_min, session.stage.age_max)
    logger.debug(
        f"Возраст на {session.start_date}: {age} "
        f"(границы {session.stage.age_min}-{session.stage.age_max}) -> {eligible}"
    )
    return eligible


def age_ranges_overlap(
    stage_min: float,
    stage_max: float,
    min_age: Optional[float],
    max_age: Optional[float]
) -> bool:
    """Пересекается ли возрастной диапазон стажа с выбранным"""
    if min_age is not None and stage_max < min_age:
        return False
    if max_age is not None and stage_min > max_age:
        return False
    return True


# ===== МЕСТНЫЙ ТАРИФ =====


class TariffResolver:
    """Определение права на местный тариф по условию тарифа"""

    @staticmethod
    def is_local_eligible(
        condition: Any,
        postal_code: Optional[str],
        school_id: Optional[int]
    ) -> bool:
        """Почтовый индекс ИЛИ школа входят в разрешенные. Без условия - нет"""
        if condition is None or getattr(condition, 'is_active', True) is False:
            return False

        postal_codes: Iterable[str] = condition.authorized_postal_codes or []
        school_ids: Iterable[int] = condition.authorized_school_ids or []

        postal_match = bool(postal_code) and str(postal_code).strip() in {str(code).strip() for code in postal_codes}
        school_match = school_id is not None and int(school_id) in {int(sid) for sid in school_ids}

        return postal_match or school_match

    @classmethod
    async def resolve(
        cls,
        tariff_repo: Any,
        tariff_condition_id: Optional[int],
        postal_code: Optional[str],
        school_id: Optional[int]
    ) -> bool:
        """
        Загрузить условие и проверить право на местный тариф.

        Любая ошибка поиска трактуется как отсутствие права (fail closed).
        """
        if not tariff_condition_id:
            return False

        try:
            condition = await tariff_repo.get_by_id(tariff_condition_id)
        except Exception as e:
            logger.error(
                f"Ошибка загрузки условия тарифа {tariff_condition_id}, "
                f"местный тариф не применяется: {e}",
                exc_info=True
            )
            return False

        if condition is None:
            logger.warning(f"Условие тарифа {tariff_condition_id} не найдено")
            return False

        return cls.is_local_eligible(condition, postal_code, school_id)


# ===== ВЫБОР ЦЕНЫ =====


def _is_set(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount > 0


class PriceSelector:
    """Выбор одного из четырех тарифов"""

    # Цепочки отката для каждого случая
    FALLBACKS = {
        (True, True): (PriceType.local_reduced, PriceType.reduced, PriceType.normal),
        (True, False): (PriceType.local, PriceType.normal),
        (False, True): (PriceType.reduced, PriceType.normal),
        (False, False): (PriceType.normal,),
    }

    @classmethod
    def select(
        cls,
        prices: PriceSnapshot,
        reduced_requested: bool
    ) -> Tuple[Optional[Decimal], PriceType]:
        """
        Выбрать цену по снимку тарифов

        Args:
            prices: снимок тарифов сессии с правом на местный тариф
            reduced_requested: запрошен ли сниженный тариф

        Returns:
            (цена, фактически примененный тариф). Цена None только если
            не задан даже обычный тариф
        """
        chain = cls.FALLBACKS[(prices.local_eligible, reduced_requested)]

        for price_type in chain:
            amount = prices.amount_for(price_type)
            if _is_set(amount):
                return amount, price_type

        logger.warning(f"У сессии не задана обычная цена: {prices}")
        return None, PriceType.normal

    @classmethod
    def select_for(
        cls,
        prices: PriceSnapshot,
        requested: PriceType
    ) -> Tuple[Optional[Decimal], PriceType]:
        """Выбор по запрошенному типу. Местная составляющая берется из снимка"""
        return cls.select(prices, reduced_requested=requested.is_reduced)
