"""
Модуль валидаторов пользовательского ввода.
Сообщения об ошибках адресованы родителям, поэтому на французском.
"""

import re
from datetime import date, time
from typing import Optional, Tuple

from pydantic import TypeAdapter, EmailStr, ValidationError

from app.utils.logging_config import get_logger


logger = get_logger(__name__)

REQUIRED_MESSAGE = 'Ce champ est requis'

_email_adapter = TypeAdapter(EmailStr)


# ================ ПЕРСОНАЛЬНЫЕ ДАННЫЕ ================

def validate_required(v: Optional[str], message: str = REQUIRED_MESSAGE) -> str:
    """Непустая строка"""
    if v is None or not str(v).strip():
        raise ValueError(message)
    return str(v).strip()


def validate_name(v: str) -> str:
    """Валидация имени или фамилии"""
    logger.debug(f"Валидация имени | входное значение: '{v}'")

    cleaned = (v or '').strip()
    if len(cleaned) < 1:
        logger.warning("Ошибка валидации имени | пустое значение")
        raise ValueError(REQUIRED_MESSAGE)

    if not re.match(r"^[A-Za-zÀ-ÖØ-öø-ÿ\s\-']+$", cleaned):
        logger.warning("Ошибка валидации имени | недопустимые символы")
        raise ValueError("Seules les lettres, les espaces, les apostrophes et les tirets sont autorisés")

    if len(cleaned) > 50:
        logger.warning("Ошибка валидации имени | превышена максимальная длина")
        raise ValueError('Longueur maximale : 50 caractères')

    result = " ".join(part.capitalize() for part in cleaned.split())
    logger.debug(f"Имя успешно валидировано | результат: '{result}'")
    return result


def validate_address(v: str) -> str:
    """Валидация адреса (улица и номер)"""
    logger.debug(f"Валидация адреса | входное значение: '{v}'")

    cleaned = (v or '').strip()

    if len(cleaned) < 5:
        logger.warning("Ошибка валидации адреса | слишком короткий адрес")
        raise ValueError("L'adresse doit contenir au moins 5 caractères")

    if len(cleaned) > 150:
        logger.warning("Ошибка валидации адреса | превышена максимальная длина")
        raise ValueError("L'adresse ne peut pas dépasser 150 caractères")

    logger.debug("Адрес успешно валидирован")
    return cleaned


def validate_postal_code(v: str) -> str:
    """Бельгийский почтовый индекс: 4 цифры"""
    logger.debug(f"Валидация почтового индекса | входное значение: '{v}'")

    cleaned = (v or '').strip()
    if not re.match(r'^[1-9]\d{3}$', cleaned):
        logger.warning("Ошибка валидации почтового индекса | неверный формат")
        raise ValueError('Le code postal doit contenir 4 chiffres (ex. 1030)')
    return cleaned


def validate_locality(v: str) -> str:
    """Валидация населенного пункта"""
    cleaned = (v or '').strip()
    if len(cleaned) < 2:
        raise ValueError(REQUIRED_MESSAGE)
    if len(cleaned) > 100:
        raise ValueError('Longueur maximale : 100 caractères')
    return cleaned


def parse_date(date_str: str) -> date:
    """Разбор даты в формате ДД/ММ/ГГГГ (допускаются точки и дефисы)"""
    cleaned = (date_str or '').strip()
    match = re.match(r'^(\d{1,2})[./\-](\d{1,2})[./\-](\d{4})$', cleaned)
    if not match:
        raise ValueError('Format attendu : JJ/MM/AAAA')

    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise ValueError('Date invalide')


def validate_birthdate(date_str: str, max_age_years: int = 25) -> date:
    """Валидация даты рождения ребенка"""
    logger.debug(f"Валидация даты рождения | входное значение: '{date_str}'")

    try:
        birth_date = parse_date(date_str)
    except ValueError:
        logger.warning("Ошибка валидации даты рождения | неверный формат")
        raise

    today = date.today()
    if birth_date > today:
        logger.warning("Ошибка валидации даты рождения | дата в будущем")
        raise ValueError('La date de naissance ne peut pas être dans le futur')

    if birth_date.year < today.year - max_age_years:
        logger.warning("Ошибка валидации даты рождения | слишком ранняя дата")
        raise ValueError('La date de naissance semble incorrecte')

    logger.debug(f"Дата рождения успешно валидирована | результат: {birth_date}")
    return birth_date


def validate_time(time_str: str) -> str:
    """Время в формате ЧЧ:ММ"""
    cleaned = (time_str or '').strip().replace('h', ':')
    match = re.match(r'^(\d{1,2}):(\d{2})$', cleaned)
    if not match:
        raise ValueError('Format attendu : HH:MM (ex. 16:30)')

    hour, minute = (int(part) for part in match.groups())
    if hour > 23 or minute > 59:
        raise ValueError('Heure invalide')
    return time(hour, minute).strftime('%H:%M')


# ================ КОНТАКТНЫЕ ДАННЫЕ ================

def validate_phone(v: str) -> str:
    """Валидация бельгийского телефона, результат в формате +32XXXXXXXXX"""
    logger.debug(f"Валидация телефона | входное значение: '{v}'")

    cleaned_phone = re.sub(r'[^\d+]', '', v or '')

    if cleaned_phone.startswith('0032'):
        cleaned_phone = '+32' + cleaned_phone[4:]
    elif cleaned_phone.startswith('0') and len(cleaned_phone) in (9, 10):
        cleaned_phone = '+32' + cleaned_phone[1:]

    if not re.match(r'^\+32\d{8,9}$', cleaned_phone):
        logger.warning("Ошибка валидации телефона | неверный формат номера")
        raise ValueError('Numéro de téléphone invalide. Exemple : 0470 12 34 56')

    logger.debug(f"Телефон успешно валидирован | результат: '{cleaned_phone}'")
    return cleaned_phone


def validate_email(email: str) -> str:
    """Валидация email"""
    logger.debug(f"Валидация email | входное значение: '{email}'")

    try:
        result = str(_email_adapter.validate_python((email or '').strip()))
        logger.debug("Email успешно валидирован")
        return result
    except ValidationError:
        logger.warning("Ошибка валидации email | неверный формат")
        raise ValueError("Adresse e-mail invalide. Exemple : nom@exemple.be")


# ================ НАЦИОНАЛЬНЫЙ НОМЕР (NRN) ================

def normalize_national_number(v: str) -> str:
    """Оставить только цифры национального номера"""
    return re.sub(r'\D', '', v or '')


def is_valid_national_number(v: str) -> bool:
    """
    Проверка контрольной суммы бельгийского национального номера.

    Первые 9 цифр - тело, последние 2 - контрольное число (97 - тело % 97).
    Для родившихся с 2000 года к телу добавляется префикс 2.
    """
    digits = normalize_national_number(v)
    if len(digits) != 11:
        return False

    body = int(digits[:9])
    check = int(digits[9:])

    if 97 - body % 97 == check:
        return True
    return 97 - (2_000_000_000 + body) % 97 == check


def format_national_number(v: str) -> str:
    """Формат YY.MM.DD-XXX-CC"""
    digits = normalize_national_number(v)
    if len(digits) != 11:
        return v
    return f"{digits[0:2]}.{digits[2:4]}.{digits[4:6]}-{digits[6:9]}-{digits[9:11]}"


def validate_national_number(v: str) -> Tuple[str, bool]:
    """
    Валидация национального номера

    Returns:
        (11 цифр номера, прошла ли проверка контрольной суммы)
    """
    logger.debug("Валидация национального номера")

    digits = normalize_national_number(v)
    if len(digits) != 11:
        logger.warning(f"Ошибка валидации национального номера | цифр: {len(digits)}")
        raise ValueError('Le numéro national doit contenir 11 chiffres')

    is_valid = is_valid_national_number(digits)
    if not is_valid:
        logger.info("Национальный номер не прошел проверку контрольной суммы")
    return digits, is_valid


# ================ ФОТО ================

ALLOWED_PHOTO_TYPES = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
}


def validate_photo_mime(mime_type: Optional[str]) -> str:
    """Допустимы только JPEG и PNG. Возвращает расширение файла"""
    extension = ALLOWED_PHOTO_TYPES.get((mime_type or '').lower())
    if not extension:
        logger.warning(f"Недопустимый тип фото: {mime_type}")
        raise ValueError('Seuls les formats JPEG et PNG sont acceptés')
    return extension

