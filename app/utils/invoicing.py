"""
Реквизиты отложенного счета: номер, структурированное сообщение, срок оплаты
"""

import random
import re
import time
from datetime import date
from typing import Optional

from app.config import settings
from app.utils.datetime_utils import add_days


def generate_invoice_number() -> str:
    """Номер счета вида INV-<6 цифр>-<4 цифры>"""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = random.randint(0, 9999)
    return f"INV-{timestamp}-{suffix:04d}"


def structured_check_digits(base: int) -> int:
    """Контрольное число mod 97 (97 если остаток 0)"""
    remainder = base % 97
    return 97 if remainder == 0 else 97 - remainder


def format_structured_communication(digits: str) -> str:
    """12 цифр -> +++ddd/dddd/ddddd+++"""
    return f"+++{digits[:3]}/{digits[3:7]}/{digits[7:]}+++"


def generate_structured_communication() -> str:
    """Бельгийское структурированное сообщение: 10 цифр основы + 2 контрольные"""
    base = "0" + "".join(str(random.randint(0, 9)) for _ in range(9))
    check = structured_check_digits(int(base))
    return format_structured_communication(f"{base}{check:02d}")


def is_valid_structured_communication(value: str) -> bool:
    match = re.fullmatch(r"\+\+\+(\d{3})/(\d{4})/(\d{5})\+\+\+", value or "")
    if not match:
        return False
    digits = "".join(match.groups())
    return structured_check_digits(int(digits[:10])) == int(digits[10:])


def invoice_due_date(today: Optional[date] = None, days: Optional[int] = None) -> date:
    today = today or date.today()
    days = settings.INVOICE_DUE_DAYS if days is None else days
    return add_days(today, days)
