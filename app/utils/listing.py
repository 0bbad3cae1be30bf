"""
Фильтрация и сортировка сессий каталога.
Работает со списком уже загруженных сессий (stage и center подгружены).
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.schemas.activity import ActivityFilters
from app.utils.calculators import is_kid_eligible, age_ranges_overlap
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


# Возрастные группы виджета популярных стажей
AGE_RANGES: Dict[str, Tuple[float, float]] = {
    '2.5-4': (2.5, 4),
    '4-6': (4, 6),
    '6-8': (6, 8),
    '8-12': (8, 12),
    '12-13': (12, 13),
}

POPULAR_LIMIT = 4


def is_visible(session: Any, today: date, now: datetime) -> bool:
    """Сессия не закончилась, опубликована и активна"""
    if getattr(session, 'is_active', True) is False:
        return False
    if session.end_date < today:
        return False
    if session.visible_from is not None and session.visible_from > now:
        return False
    return True


def matches_filters(session: Any, filters: ActivityFilters) -> bool:
    """Проверка сессии по фильтрам (кроме видимости)"""
    if filters.kid_birth_date is not None and not is_kid_eligible(filters.kid_birth_date, session):
        return False

    if filters.center_id is not None and session.center_id != filters.center_id:
        return False
    if filters.period and session.period != filters.period:
        return False
    if filters.week and session.week != filters.week:
        return False

    if (filters.min_age is not None or filters.max_age is not None) and not age_ranges_overlap(
        session.stage.age_min, session.stage.age_max, filters.min_age, filters.max_age
    ):
        return False

    if filters.reduced_only and not session.has_reduced_price:
        return False

    return True


def remaining_places(session: Any) -> int:
    return session.capacity - session.current_registrations


def filter_sessions(
    sessions: Sequence[Any],
    filters: Optional[ActivityFilters] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None
) -> List[Any]:
    """
    Отобрать сессии для показа

    Сессии, закончившиеся до сегодняшнего дня, еще не опубликованные и
    неактивные исключаются. Затем применяются фильтры, результат
    сортируется по числу свободных мест (меньше мест - выше) и обрезается
    до filters.limit.
    """
    filters = filters or ActivityFilters()
    now = now or datetime.now()
    today = today or now.date()

    visible = [s for s in sessions if is_visible(s, today, now)]
    selected = [s for s in visible if matches_filters(s, filters)]

    # sorted стабилен: при равенстве мест сохраняется порядок загрузки
    selected = sorted(selected, key=remaining_places)

    if filters.limit is not None:
        selected = selected[:filters.limit]

    logger.debug(
        f"Каталог: всего {len(sessions)}, видимых {len(visible)}, "
        f"после фильтров {len(selected)}"
    )
    return selected


def popular_sessions(
    sessions: Sequence[Any],
    center_id: Optional[int] = None,
    age_range: Optional[str] = None,
    week: Optional[str] = None,
    limit: int = POPULAR_LIMIT,
    today: Optional[date] = None,
    now: Optional[datetime] = None
) -> List[Any]:
    """Популярные стажи: сессии с наименьшим числом свободных мест"""
    min_age, max_age = AGE_RANGES.get(age_range, (None, None)) if age_range else (None, None)
    filters = ActivityFilters(
        center_id=center_id,
        min_age=min_age,
        max_age=max_age,
        week=week,
        limit=limit,
    )
    return filter_sessions(sessions, filters, today=today, now=now)


def paginate(items: Sequence[Any], page: int, page_size: int) -> Tuple[List[Any], int]:
    """
    Страница списка

    Returns:
        (элементы страницы, количество страниц)
    """
    if page_size <= 0:
        return list(items), 1
    total_pages = max(1, (len(items) + page_size - 1) // page_size)
    page = min(max(page, 0), total_pages - 1)
    start = page * page_size
    return list(items[start:start + page_size]), total_pages
