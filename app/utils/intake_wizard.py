"""
Пошаговая анкета ребенка (6 шагов).

Шаги проходятся строго по порядку. Вернуться можно только к завершенному
или текущему шагу. Завершение последнего шага отправляет всю анкету одной
операцией создания/обновления через переданную функцию submitter.
Состояние сериализуется в словарь и живет в данных FSM между апдейтами.
"""

import enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.schemas.kid import SECTION_MODELS, validation_messages
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class WizardStep(str, enum.Enum):
    """Шаги анкеты в порядке прохождения"""
    personal = "personal"
    health = "health"
    allergies = "allergies"
    activities = "activities"
    departure = "departure"
    inclusion = "inclusion"


STEP_ORDER: List[WizardStep] = list(WizardStep)

STEP_TITLES = {
    WizardStep.personal: "Informations personnelles",
    WizardStep.health: "Santé",
    WizardStep.allergies: "Allergies",
    WizardStep.activities: "Activités",
    WizardStep.departure: "Départ",
    WizardStep.inclusion: "Inclusion",
}


class StepResult(str, enum.Enum):
    """Итог завершения шага"""
    advanced = "advanced"
    submitted = "submitted"
    submit_failed = "submit_failed"


# submitter(анкета, kid_id или None) -> kid_id
Submitter = Callable[[Dict[str, Dict[str, Any]], Optional[int]], Awaitable[int]]


class WizardNavigationError(Exception):
    """Переход к недоступному шагу"""


class StepValidationError(ValueError):
    """Ошибки проверки раздела. Данные других шагов не затрагиваются"""

    def __init__(self, step: WizardStep, errors: List[str]):
        self.step = step
        self.errors = errors
        super().__init__("\n".join(errors))


class IntakeWizard:
    """Машина состояний анкеты"""

    def __init__(
        self,
        submitter: Optional[Submitter] = None,
        kid_id: Optional[int] = None,
        data: Optional[Dict[str, Dict[str, Any]]] = None,
        completed: Optional[List[WizardStep]] = None,
        current: WizardStep = WizardStep.personal,
        edit_mode: bool = False
    ):
        self.submitter = submitter
        self.kid_id = kid_id
        self.data: Dict[str, Dict[str, Any]] = dict(data or {})
        self.completed: List[WizardStep] = [WizardStep(step) for step in (completed or [])]
        self.current = WizardStep(current)
        self.edit_mode = edit_mode
        self.submitted = False
        self.submit_error: Optional[str] = None

    @classmethod
    def for_existing(
        cls,
        kid_id: int,
        data: Dict[str, Dict[str, Any]],
        submitter: Optional[Submitter] = None
    ) -> "IntakeWizard":
        """Редактирование: все шаги считаются завершенными, переход свободный"""
        logger.info(f"Анкета открыта на редактирование для ребенка {kid_id}")
        return cls(
            submitter=submitter,
            kid_id=kid_id,
            data=data,
            completed=list(STEP_ORDER),
            current=WizardStep.personal,
            edit_mode=True
        )

    def missing_steps(self) -> List[WizardStep]:
        """Разделы без сохраненных данных"""
        return [step for step in STEP_ORDER if step.value not in self.data]

    # ===== Навигация =====

    @property
    def is_last_step(self) -> bool:
        return self.current == STEP_ORDER[-1]

    def can_navigate(self, step: WizardStep) -> bool:
        step = WizardStep(step)
        return step == self.current or step in self.completed

    def go_to(self, step: WizardStep) -> None:
        step = WizardStep(step)
        if not self.can_navigate(step):
            logger.warning(f"Переход к незавершенному шагу {step.value} отклонен (текущий {self.current.value})")
            raise WizardNavigationError(f"Étape '{STEP_TITLES[step]}' non disponible")
        self.current = step
        logger.debug(f"Анкета: переход к шагу {step.value}")

    def reachable_steps(self) -> List[WizardStep]:
        return [step for step in STEP_ORDER if self.can_navigate(step)]

    # ===== Шаги =====

    def validate_section(self, step: WizardStep, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Проверить раздел и вернуть нормализованные данные"""
        model = SECTION_MODELS[step.value]
        try:
            section = model.model_validate(payload)
        except ValidationError as e:
            errors = validation_messages(e)
            logger.info(f"Шаг {step.value} не прошел проверку: {errors}")
            raise StepValidationError(step, errors)
        return section.model_dump(mode='json')

    async def complete_step(self, step: WizardStep, payload: Dict[str, Any]) -> StepResult:
        """
        Завершить текущий шаг

        Raises:
            WizardNavigationError: шаг не текущий или анкета уже отправлена
            StepValidationError: ошибки в данных раздела
        """
        step = WizardStep(step)
        if self.submitted:
            raise WizardNavigationError("Le formulaire a déjà été envoyé")
        if step != self.current:
            raise WizardNavigationError(f"Étape '{STEP_TITLES[step]}' non active")

        self.data[step.value] = self.validate_section(step, payload)
        if step not in self.completed:
            self.completed.append(step)

        if step == STEP_ORDER[-1]:
            return await self.submit()

        self.current = STEP_ORDER[STEP_ORDER.index(step) + 1]
        logger.debug(f"Шаг {step.value} завершен, следующий {self.current.value}")
        return StepResult.advanced

    async def submit(self) -> StepResult:
        """
        Отправить анкету целиком.

        При ошибке анкета остается на последнем шаге с данными, сообщение
        сохраняется в submit_error, повторная отправка разрешена.
        """
        if self.submitted:
            raise WizardNavigationError("Le formulaire a déjà été envoyé")

        missing = [step.value for step in STEP_ORDER if step.value not in self.data]
        if missing:
            raise WizardNavigationError(f"Étapes incomplètes : {', '.join(missing)}")
        if self.submitter is None:
            raise RuntimeError("Не задана функция отправки анкеты")

        self.current = STEP_ORDER[-1]
        try:
            kid_id = await self.submitter(self.merged(), self.kid_id)
        except Exception as e:
            self.submit_error = "Une erreur est survenue lors de l'enregistrement. Veuillez réessayer."
            logger.error(f"Ошибка отправки анкеты ребенка {self.kid_id}: {e}", exc_info=True)
            return StepResult.submit_failed

        self.kid_id = kid_id
        self.submitted = True
        self.submit_error = None
        logger.info(f"Анкета ребенка {kid_id} отправлена")
        return StepResult.submitted

    def merged(self) -> Dict[str, Dict[str, Any]]:
        """Все разделы анкеты"""
        return {step.value: dict(self.data[step.value]) for step in STEP_ORDER if step.value in self.data}

    def section(self, step: WizardStep) -> Dict[str, Any]:
        return dict(self.data.get(WizardStep(step).value, {}))

    # ===== Сериализация =====

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kid_id': self.kid_id,
            'data': self.data,
            'completed': [step.value for step in self.completed],
            'current': self.current.value,
            'edit_mode': self.edit_mode,
            'submitted': self.submitted,
            'submit_error': self.submit_error,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], submitter: Optional[Submitter] = None) -> "IntakeWizard":
        wizard = cls(
            submitter=submitter,
            kid_id=raw.get('kid_id'),
            data=raw.get('data') or {},
            completed=raw.get('completed') or [],
            current=raw.get('current') or WizardStep.personal,
            edit_mode=bool(raw.get('edit_mode')),
        )
        wizard.submitted = bool(raw.get('submitted'))
        wizard.submit_error = raw.get('submit_error')
        return wizard
