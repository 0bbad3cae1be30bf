from datetime import datetime, date, timedelta
from typing import Optional

from app.utils.logging_config import get_logger

logger = get_logger(__name__)


def format_date(value: Optional[date]) -> str:
    """Дата для показа родителю: ДД/ММ/ГГГГ"""
    if value is None:
        return '-'
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime('%d/%m/%Y')


def format_period(start: date, end: date) -> str:
    """Диапазон дат сессии: 'du 07/07/2025 au 11/07/2025'"""
    if start == end:
        return f"le {format_date(start)}"
    return f"du {format_date(start)} au {format_date(end)}"


def add_days(start: date, days: int) -> date:
    """Дата через указанное количество дней (срок оплаты счета)"""
    logger.debug(f"Вычисление даты: {start} + {days} дн.")
    return start + timedelta(days=days)


def days_until(target: date, today: Optional[date] = None) -> int:
    """Количество дней до даты (отрицательное, если дата прошла)"""
    today = today or date.today()
    return (target - today).days
