"""
Pydantic модели разделов анкеты ребенка.
Каждый раздел проверяет свои условные поля, ошибки на французском.
"""

from datetime import date
from typing import ClassVar, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from app.utils.validation import (
    REQUIRED_MESSAGE, validate_name, validate_address, validate_postal_code,
    validate_locality, validate_national_number, validate_photo_mime, validate_time
)


SWIM_LEVELS = ('pas du tout', 'difficilement', 'bien', 'très bien')


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class SectionModel(BaseModel):
    """Базовый раздел: лишние поля игнорируются, строки обрезаются"""
    model_config = {'str_strip_whitespace': True, 'extra': 'ignore'}

    @staticmethod
    def raise_if_errors(errors: List[str]) -> None:
        if errors:
            raise ValueError("\n".join(errors))


class PersonalSection(SectionModel):
    """Личные данные ребенка"""
    last_name: str = Field(..., description="Фамилия")
    first_name: str = Field(..., description="Имя")
    birth_date: date = Field(..., description="Дата рождения")
    national_number: Optional[str] = Field(None, description="Национальный номер")
    is_national_number_valid: bool = Field(False, description="Результат проверки NRN")
    address: str = Field(..., description="Адрес")
    postal_code: str = Field(..., description="Почтовый индекс")
    locality: str = Field(..., description="Населенный пункт")
    school_id: Optional[int] = Field(None, description="Школа")
    photo_file_id: Optional[str] = Field(None, description="file_id фото в Telegram")
    photo_mime: Optional[str] = Field(None, description="MIME-тип фото")
    photo_consent: bool = Field(False, description="Согласие на фото")

    @field_validator('last_name', 'first_name')
    @classmethod
    def check_names(cls, v: str) -> str:
        return validate_name(v)

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

    @field_validator('birth_date')
    @classmethod
    def check_birth_date(cls, v: date) -> date:
        if v > date.today():
            raise ValueError('La date de naissance ne peut pas être dans le futur')
        return v

    @model_validator(mode='after')
    def check_national_number_and_photo(self):
        if _blank(self.national_number):
            self.national_number = None
            self.is_national_number_valid = False
        else:
            digits, is_valid = validate_national_number(self.national_number)
            self.national_number = digits
            self.is_national_number_valid = is_valid

        if self.photo_file_id:
            validate_photo_mime(self.photo_mime)
        return self


class HealthSection(SectionModel):
    """Медицинская информация"""
    specific_medical: Optional[str] = None
    past_medical: Optional[str] = None
    medication: bool = False
    medication_details: Optional[str] = None
    medication_autonomy: bool = False
    tetanus: bool = False
    doctor_name: Optional[str] = None
    doctor_phone: Optional[str] = None
    parental_consent: bool = False
    medication_form_sent: bool = False

    @model_validator(mode='after')
    def check_required(self):
        errors = []
        if _blank(self.specific_medical):
            errors.append(f"Informations médicales spécifiques : {REQUIRED_MESSAGE}")
        if _blank(self.past_medical):
            errors.append(f"Antécédents médicaux : {REQUIRED_MESSAGE}")
        if self.medication and _blank(self.medication_details):
            errors.append('Veuillez préciser les détails de la médication')
        if not self.parental_consent:
            errors.append('Vous devez marquer votre accord pour continuer')
        self.raise_if_errors(errors)

        if not self.medication:
            self.medication_details = None
            self.medication_autonomy = False
        return self


class AllergiesSection(SectionModel):
    """Аллергии и особая диета"""
    has_allergies: bool = False
    allergies_details: Optional[str] = None
    allergies_consequences: Optional[str] = None
    special_diet: bool = False
    diet_details: Optional[str] = None

    @model_validator(mode='after')
    def check_required(self):
        errors = []
        if self.has_allergies:
            if _blank(self.allergies_details):
                errors.append('Veuillez décrire les allergies')
            if _blank(self.allergies_consequences):
                errors.append('Veuillez décrire les conséquences des allergies')
        if self.special_diet and _blank(self.diet_details):
            errors.append('Veuillez décrire le régime alimentaire spécial')
        self.raise_if_errors(errors)

        if not self.has_allergies:
            self.allergies_details = None
            self.allergies_consequences = None
        if not self.special_diet:
            self.diet_details = None
        return self


class ActivitiesSection(SectionModel):
    """Участие в активностях и плавание"""
    can_participate: bool = True
    restriction_details: Optional[str] = None
    swim_level: Optional[Literal['pas du tout', 'difficilement', 'bien', 'très bien']] = None
    water_fear: bool = False
    other_info: Optional[str] = None

    @model_validator(mode='after')
    def check_required(self):
        errors = []
        if not self.can_participate and _blank(self.restriction_details):
            errors.append('Veuillez préciser les restrictions')
        if self.swim_level is None:
            errors.append('Veuillez sélectionner un niveau de natation')
        self.raise_if_errors(errors)

        if self.can_participate:
            self.restriction_details = None
        return self


class DepartureSection(SectionModel):
    """Уход из центра"""
    leaves_alone: bool = False
    departure_time: Optional[str] = None
    pickup_person_ids: List[int] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_required(self):
        if self.leaves_alone:
            if _blank(self.departure_time):
                raise ValueError("Veuillez indiquer l'heure de départ")
            self.departure_time = validate_time(self.departure_time)
        else:
            if not self.pickup_person_ids:
                raise ValueError('Veuillez sélectionner au moins une personne autorisée')
            self.departure_time = None
        return self


class InclusionSection(SectionModel):
    """Особые потребности"""
    has_needs: bool = False
    situation_details: Optional[str] = None
    impact_details: Optional[str] = None
    needs_dedicated_staff: Optional[bool] = None
    staff_details: Optional[str] = None
    strategies: Optional[str] = None
    assistive_devices: Optional[str] = None
    stress_signals: Optional[str] = None
    strengths: Optional[str] = None
    previous_experience: Optional[str] = None

    DETAIL_FIELDS: ClassVar[Tuple[str, ...]] = (
        'situation_details', 'impact_details', 'needs_dedicated_staff', 'staff_details',
        'strategies', 'assistive_devices', 'stress_signals', 'strengths', 'previous_experience',
    )

    @model_validator(mode='after')
    def check_required(self):
        if not self.has_needs:
            for field in self.DETAIL_FIELDS:
                setattr(self, field, None)
            return self

        errors = []
        if _blank(self.situation_details):
            errors.append('Veuillez décrire la situation')
        if _blank(self.impact_details):
            errors.append("Veuillez décrire l'impact au quotidien")
        if self.needs_dedicated_staff is None:
            errors.append("Veuillez indiquer si un accompagnement dédié est nécessaire")
        elif self.needs_dedicated_staff and _blank(self.staff_details):
            errors.append("Veuillez préciser l'accompagnement nécessaire")
        self.raise_if_errors(errors)
        return self


SECTION_MODELS: Dict[str, Type[SectionModel]] = {
    'personal': PersonalSection,
    'health': HealthSection,
    'allergies': AllergiesSection,
    'activities': ActivitiesSection,
    'departure': DepartureSection,
    'inclusion': InclusionSection,
}


def validation_messages(exc: ValidationError) -> List[str]:
    """Сообщения ошибок pydantic в виде для пользователя"""
    messages = []
    for error in exc.errors():
        ctx_error = (error.get('ctx') or {}).get('error')
        if ctx_error is not None:
            messages.extend(str(ctx_error).split("\n"))
        elif error.get('type') == 'missing':
            field = ".".join(str(part) for part in error.get('loc', ()))
            messages.append(f"{field} : {REQUIRED_MESSAGE}")
        else:
            messages.append(error.get('msg', str(error)))
    return messages
