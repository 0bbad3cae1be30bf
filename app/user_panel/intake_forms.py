"""
Описание вопросов анкеты ребенка по шагам.

Один общий роутер задает вопросы раздела по порядку, пропуская те,
условие которых не выполнено для уже полученных ответов.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.config import settings
from app.schemas.kid import SWIM_LEVELS
from app.utils.intake_wizard import WizardStep
from app.utils.validation import parse_date


TEXT = 'text'
DATE = 'date'
BOOL = 'bool'
CHOICE = 'choice'
MULTI = 'multi'
PHOTO = 'photo'
SCHOOL = 'school'


@dataclass(frozen=True)
class FormField:
    name: str
    label: str
    kind: str = TEXT
    optional: bool = False
    choices: Tuple[str, ...] = ()
    condition: Optional[Callable[[Dict[str, Any]], bool]] = None

    def applies(self, answers: Dict[str, Any]) -> bool:
        return self.condition is None or bool(self.condition(answers))

    @property
    def is_button_answer(self) -> bool:
        return self.kind in (BOOL, CHOICE, MULTI, SCHOOL)


def _yes(name: str) -> Callable[[Dict[str, Any]], bool]:
    return lambda answers: answers.get(name) is True


def _no(name: str) -> Callable[[Dict[str, Any]], bool]:
    return lambda answers: answers.get(name) is False


def _photo_storage_enabled(answers: Dict[str, Any]) -> bool:
    """Фото спрашивается только при настроенном хранилище"""
    return settings.storage_enabled


STEP_FIELDS: Dict[WizardStep, List[FormField]] = {
    WizardStep.personal: [
        FormField('last_name', "Nom de l'enfant"),
        FormField('first_name', "Prénom de l'enfant"),
        FormField('birth_date', 'Date de naissance (JJ/MM/AAAA)', kind=DATE),
        FormField('national_number', 'Numéro national (11 chiffres)', optional=True),
        FormField('address', 'Adresse (rue et numéro)'),
        FormField('postal_code', 'Code postal'),
        FormField('locality', 'Localité'),
        FormField('school_id', 'École fréquentée', kind=SCHOOL, optional=True),
        FormField('photo_file_id', "Photo de l'enfant (JPEG ou PNG)", kind=PHOTO, optional=True,
                  condition=_photo_storage_enabled),
        FormField('photo_consent', "Acceptez-vous que votre enfant soit pris en photo pendant le stage ?", kind=BOOL),
    ],
    WizardStep.health: [
        FormField('specific_medical', 'Informations médicales spécifiques (indiquez "aucune" si rien à signaler)'),
        FormField('past_medical', 'Antécédents médicaux (indiquez "aucun" si rien à signaler)'),
        FormField('medication', "L'enfant doit-il prendre des médicaments ?", kind=BOOL),
        FormField('medication_details', 'Quels médicaments, quelle posologie ?', condition=_yes('medication')),
        FormField('medication_autonomy', "L'enfant est-il autonome pour les prendre ?", kind=BOOL,
                  condition=_yes('medication')),
        FormField('medication_form_sent', 'Avez-vous envoyé le formulaire de médication ?', kind=BOOL,
                  condition=_yes('medication')),
        FormField('tetanus', "L'enfant est-il vacciné contre le tétanos ?", kind=BOOL),
        FormField('doctor_name', 'Nom du médecin traitant', optional=True),
        FormField('doctor_phone', 'Téléphone du médecin traitant', optional=True),
        FormField('parental_consent', "Autorisez-vous l'équipe à prendre les mesures médicales urgentes ?",
                  kind=BOOL),
    ],
    WizardStep.allergies: [
        FormField('has_allergies', "L'enfant a-t-il des allergies ?", kind=BOOL),
        FormField('allergies_details', 'Décrivez les allergies', condition=_yes('has_allergies')),
        FormField('allergies_consequences', 'Quelles en sont les conséquences ?', condition=_yes('has_allergies')),
        FormField('special_diet', "L'enfant suit-il un régime alimentaire spécial ?", kind=BOOL),
        FormField('diet_details', 'Décrivez le régime', condition=_yes('special_diet')),
    ],
    WizardStep.activities: [
        FormField('can_participate', "L'enfant peut-il participer à toutes les activités ?", kind=BOOL),
        FormField('restriction_details', 'Précisez les restrictions', condition=_no('can_participate')),
        FormField('swim_level', 'Niveau de natation', kind=CHOICE, choices=SWIM_LEVELS),
        FormField('water_fear', "L'enfant a-t-il peur de l'eau ?", kind=BOOL),
        FormField('other_info', 'Autres informations utiles', optional=True),
    ],
    WizardStep.departure: [
        FormField('leaves_alone', "L'enfant peut-il quitter le stage seul ?", kind=BOOL),
        FormField('departure_time', 'À quelle heure ? (HH:MM)', condition=_yes('leaves_alone')),
        FormField('pickup_person_ids', 'Personnes autorisées à venir chercher l\'enfant', kind=MULTI,
                  condition=_no('leaves_alone')),
    ],
    WizardStep.inclusion: [
        FormField('has_needs', "L'enfant a-t-il des besoins spécifiques ?", kind=BOOL),
        FormField('situation_details', 'Décrivez la situation', condition=_yes('has_needs')),
        FormField('impact_details', 'Quel est l\'impact au quotidien ?', condition=_yes('has_needs')),
        FormField('needs_dedicated_staff', 'Un accompagnement dédié est-il nécessaire ?', kind=BOOL,
                  condition=_yes('has_needs')),
        FormField('staff_details', "Précisez l'accompagnement nécessaire", condition=_yes('needs_dedicated_staff')),
        FormField('strategies', 'Stratégies qui fonctionnent', optional=True, condition=_yes('has_needs')),
        FormField('assistive_devices', 'Aides techniques utilisées', optional=True, condition=_yes('has_needs')),
        FormField('stress_signals', 'Signes de stress à connaître', optional=True, condition=_yes('has_needs')),
        FormField('strengths', 'Points forts de l\'enfant', optional=True, condition=_yes('has_needs')),
        FormField('previous_experience', 'Expériences précédentes en stage', optional=True,
                  condition=_yes('has_needs')),
    ],
}


def next_field_index(step: WizardStep, answers: Dict[str, Any], start: int = 0) -> Optional[int]:
    """Индекс следующего применимого вопроса или None, если раздел заполнен"""
    fields = STEP_FIELDS[step]
    for index in range(start, len(fields)):
        if fields[index].applies(answers):
            return index
    return None


def prune_answers(step: WizardStep, answers: Dict[str, Any]) -> Dict[str, Any]:
    """Убрать ответы на вопросы, ставшие неприменимыми"""
    fields = {f.name: f for f in STEP_FIELDS[step]}
    return {
        name: value for name, value in answers.items()
        if name not in fields or fields[name].applies(answers)
    }


def parse_text_answer(form_field: FormField, text: str) -> Any:
    """
    Текстовый ответ -> значение раздела

    Raises:
        ValueError: неверный формат
    """
    cleaned = (text or '').strip()
    if form_field.kind == DATE:
        return parse_date(cleaned).isoformat()
    return cleaned


def format_answer(form_field: FormField, value: Any, labels: Optional[Dict[int, str]] = None) -> str:
    """Текущее значение для показа при редактировании"""
    if value is None or value == '' or value == []:
        return '-'
    if form_field.kind == BOOL:
        return 'Oui' if value else 'Non'
    if form_field.kind == DATE:
        try:
            return date.fromisoformat(str(value)).strftime('%d/%m/%Y')
        except ValueError:
            return str(value)
    if form_field.kind == PHOTO:
        return 'photo envoyée'
    if form_field.kind in (MULTI, SCHOOL) and labels:
        values = value if isinstance(value, list) else [value]
        return ", ".join(labels.get(int(v), str(v)) for v in values)
    return str(value)
