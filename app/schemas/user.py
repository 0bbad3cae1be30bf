"""Pydantic модели профиля родителя и доверенных лиц"""

from pydantic import BaseModel, Field, field_validator

from app.utils.validation import (
    validate_name, validate_phone, validate_email, validate_address,
    validate_postal_code, validate_locality, validate_required
)


class ParentProfileData(BaseModel):
    """Профиль родителя"""
    first_name: str = Field(..., max_length=50, description="Имя")
    last_name: str = Field(..., max_length=50, description="Фамилия")
    phone_number: str = Field(..., description="Телефон")
    email: str = Field(..., description="Email")
    address: str = Field(..., description="Адрес")
    postal_code: str = Field(..., description="Почтовый индекс")
    locality: str = Field(..., description="Населенный пункт")

    @field_validator('first_name', 'last_name')
    @classmethod
    def check_names(cls, v: str) -> str:
        return validate_name(v)

    @field_validator('phone_number')
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone(v)

    @field_validator('email')
    @classmethod
    def check_email(cls, v: str) -> str:
        return validate_email(v)

    @field_validator('address')
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_address(v)

    @field_validator('postal_code')
    @classmethod
    def check_postal_code(cls, v: str) -> str:
        return validate_postal_code(v)

    @field_validator('locality')
    @classmethod
    def check_locality(cls, v: str) -> str:
        return validate_locality(v)


class AuthorizedPersonData(BaseModel):
    """Доверенное лицо для забора ребенка"""
    first_name: str = Field(..., max_length=50)
    last_name: str = Field(..., max_length=50)
    phone_number: str
    relationship_label: str = Field(..., max_length=50)

    @field_validator('first_name', 'last_name')
    @classmethod
    def check_names(cls, v: str) -> str:
        return validate_name(v)

    @field_validator('phone_number')
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone(v)

    @field_validator('relationship_label')
    @classmethod
    def check_relationship(cls, v: str) -> str:
        return validate_required(v)


# Проверка одного поля при редактировании профиля
PROFILE_FIELD_VALIDATORS = {
    'first_name': validate_name,
    'last_name': validate_name,
    'phone_number': validate_phone,
    'email': validate_email,
    'address': validate_address,
    'postal_code': validate_postal_code,
    'locality': validate_locality,
}
