"""
Тесты пошаговой анкеты ребенка: порядок шагов, навигация,
проверка разделов и отправка.
"""

import pytest
from unittest.mock import AsyncMock, patch

from app.config import settings
from app.routers.user.kid_intake import begin_submit
from app.user_panel.intake_forms import (
    STEP_FIELDS, next_field_index, prune_answers, parse_text_answer, format_answer
)
from app.utils.intake_wizard import (
    IntakeWizard, WizardStep, StepResult, STEP_ORDER,
    WizardNavigationError, StepValidationError
)


PERSONAL = {
    'last_name': 'dupont',
    'first_name': 'léa',
    'birth_date': '2018-01-01',
    'national_number': '',
    'address': 'Rue de la Loi 16',
    'postal_code': '1000',
    'locality': 'Bruxelles',
    'photo_consent': True,
}
HEALTH = {
    'specific_medical': 'aucune',
    'past_medical': 'aucun',
    'medication': False,
    'tetanus': True,
    'parental_consent': True,
}
ALLERGIES = {'has_allergies': False, 'special_diet': False}
ACTIVITIES = {'can_participate': True, 'swim_level': 'bien', 'water_fear': False}
DEPARTURE = {'leaves_alone': True, 'departure_time': '16h30'}
INCLUSION = {'has_needs': False}

SECTIONS = [PERSONAL, HEALTH, ALLERGIES, ACTIVITIES, DEPARTURE, INCLUSION]


async def complete_until(wizard, last_index):
    """Пройти шаги с первого по last_index включительно"""
    result = None
    for step, payload in list(zip(STEP_ORDER, SECTIONS))[:last_index + 1]:
        result = await wizard.complete_step(step, payload)
    return result


# ==================== Навигация ====================
@pytest.mark.asyncio
class TestWizardNavigation:
    """Тесты порядка шагов."""

    async def test_starts_at_personal(self):
        wizard = IntakeWizard()
        assert wizard.current == WizardStep.personal
        assert wizard.reachable_steps() == [WizardStep.personal]

    async def test_cannot_skip_ahead(self):
        """К незавершенному шагу перейти нельзя."""
        wizard = IntakeWizard()
        with pytest.raises(WizardNavigationError):
            wizard.go_to(WizardStep.health)
        assert wizard.current == WizardStep.personal

    async def test_complete_advances(self):
        wizard = IntakeWizard()
        result = await wizard.complete_step(WizardStep.personal, PERSONAL)
        assert result == StepResult.advanced
        assert wizard.current == WizardStep.health
        assert wizard.completed == [WizardStep.personal]

    async def test_back_to_completed_step(self):
        wizard = IntakeWizard()
        await complete_until(wizard, 2)

        wizard.go_to(WizardStep.personal)
        assert wizard.current == WizardStep.personal
        assert wizard.can_navigate(WizardStep.allergies) is True
        assert wizard.can_navigate(WizardStep.activities) is False

    async def test_only_current_step_can_be_completed(self):
        wizard = IntakeWizard()
        with pytest.raises(WizardNavigationError):
            await wizard.complete_step(WizardStep.health, HEALTH)

    async def test_recomplete_keeps_progress(self):
        """Повторное завершение шага не дублирует его в списке."""
        wizard = IntakeWizard()
        await complete_until(wizard, 1)
        wizard.go_to(WizardStep.personal)
        await wizard.complete_step(WizardStep.personal, {**PERSONAL, 'locality': 'Ixelles'})

        assert wizard.completed == [WizardStep.personal, WizardStep.health]
        assert wizard.section(WizardStep.personal)['locality'] == 'Ixelles'
        assert wizard.current == WizardStep.health

    async def test_edit_mode_all_steps_reachable(self):
        wizard = IntakeWizard.for_existing(5, {'personal': {}})
        assert wizard.edit_mode is True
        assert wizard.reachable_steps() == STEP_ORDER
        wizard.go_to(WizardStep.inclusion)
        assert wizard.current == WizardStep.inclusion

    async def test_missing_steps(self):
        wizard = IntakeWizard.for_existing(5, {'personal': {}, 'health': {}})
        assert wizard.missing_steps() == STEP_ORDER[2:]


# ==================== Проверка разделов ====================
@pytest.mark.asyncio
class TestWizardValidation:
    """Тесты проверки данных шага."""

    async def test_errors_keep_step(self):
        wizard = IntakeWizard()
        with pytest.raises(StepValidationError) as exc_info:
            await wizard.complete_step(WizardStep.personal, {**PERSONAL, 'postal_code': '12'})

        assert exc_info.value.step == WizardStep.personal
        assert any('code postal' in error for error in exc_info.value.errors)
        assert wizard.current == WizardStep.personal
        assert wizard.completed == []

    async def test_invalid_step_leaves_other_data(self):
        """Ошибка шага не затрагивает данные других шагов."""
        wizard = IntakeWizard()
        await complete_until(wizard, 0)
        saved = wizard.section(WizardStep.personal)

        with pytest.raises(StepValidationError):
            await wizard.complete_step(WizardStep.health, {**HEALTH, 'parental_consent': False})

        assert wizard.section(WizardStep.personal) == saved
        assert 'health' not in wizard.data

    async def test_normalized_data_stored(self):
        wizard = IntakeWizard()
        await wizard.complete_step(WizardStep.personal, PERSONAL)
        section = wizard.section(WizardStep.personal)
        assert section['last_name'] == 'Dupont'
        assert section['birth_date'] == '2018-01-01'
        assert section['national_number'] is None

    async def test_departure_time_normalized(self):
        wizard = IntakeWizard()
        await complete_until(wizard, 4)
        assert wizard.section(WizardStep.departure)['departure_time'] == '16:30'


# ==================== Отправка ====================
@pytest.mark.asyncio
class TestWizardSubmit:
    """Тесты отправки анкеты на последнем шаге."""

    async def test_submit_on_last_step(self):
        submitter = AsyncMock(return_value=42)
        wizard = IntakeWizard(submitter=submitter)

        result = await complete_until(wizard, 5)

        assert result == StepResult.submitted
        assert wizard.kid_id == 42
        assert wizard.submitted is True
        assert submitter.await_count == 1
        draft, kid_id = submitter.await_args.args
        assert kid_id is None
        assert set(draft) == {step.value for step in STEP_ORDER}
        assert draft['allergies']['allergies_details'] is None

    async def test_submit_failure_keeps_data(self):
        """Ошибка сохранения: данные и шаг сохраняются, повтор разрешен."""
        submitter = AsyncMock(side_effect=[RuntimeError("db locked"), 7])
        wizard = IntakeWizard(submitter=submitter)

        result = await complete_until(wizard, 5)
        assert result == StepResult.submit_failed
        assert wizard.submit_error
        assert wizard.current == WizardStep.inclusion
        assert len(wizard.data) == 6

        assert await wizard.submit() == StepResult.submitted
        assert wizard.submit_error is None
        assert wizard.kid_id == 7

    async def test_no_second_submit(self):
        wizard = IntakeWizard(submitter=AsyncMock(return_value=1))
        await complete_until(wizard, 5)
        with pytest.raises(WizardNavigationError):
            await wizard.submit()

    async def test_submit_with_missing_steps(self):
        wizard = IntakeWizard.for_existing(3, {'personal': PERSONAL}, submitter=AsyncMock())
        with pytest.raises(WizardNavigationError):
            await wizard.submit()

    async def test_edit_mode_passes_kid_id(self):
        submitter = AsyncMock(return_value=3)
        wizard = IntakeWizard.for_existing(3, {}, submitter=submitter)
        for step, payload in zip(STEP_ORDER, SECTIONS):
            wizard.go_to(step)
            await wizard.complete_step(step, payload)

        assert submitter.await_args.args[1] == 3
        assert wizard.submitted is True

    async def test_serialization(self):
        wizard = IntakeWizard()
        await complete_until(wizard, 1)
        wizard.go_to(WizardStep.personal)

        restored = IntakeWizard.from_dict(wizard.to_dict())
        assert restored.current == WizardStep.personal
        assert restored.completed == [WizardStep.personal, WizardStep.health]
        assert restored.merged() == wizard.merged()

    async def test_submitted_flag_restored(self):
        """Восстановленная после отправки анкета повторно не отправляется."""
        submitter = AsyncMock(return_value=9)
        wizard = IntakeWizard(submitter=submitter)
        await complete_until(wizard, 5)

        restored = IntakeWizard.from_dict(wizard.to_dict(), submitter=submitter)

        assert restored.submitted is True
        with pytest.raises(WizardNavigationError):
            await restored.submit()
        assert submitter.await_count == 1


# ==================== Вопросы разделов ====================
class TestIntakeForms:
    """Тесты условных вопросов анкеты."""

    def test_conditional_question_skipped(self):
        fields = STEP_FIELDS[WizardStep.allergies]
        index = next_field_index(WizardStep.allergies, {'has_allergies': False}, start=1)
        assert fields[index].name == 'special_diet'

    def test_conditional_question_asked(self):
        fields = STEP_FIELDS[WizardStep.allergies]
        index = next_field_index(WizardStep.allergies, {'has_allergies': True}, start=1)
        assert fields[index].name == 'allergies_details'

    def test_end_of_section(self):
        answers = {'has_needs': False}
        assert next_field_index(WizardStep.inclusion, answers, start=1) is None

    def test_staff_details_only_with_dedicated_staff(self):
        names = [f.name for f in STEP_FIELDS[WizardStep.inclusion]]
        start = names.index('staff_details')
        answers = {'has_needs': True, 'needs_dedicated_staff': False}
        index = next_field_index(WizardStep.inclusion, answers, start=start)
        assert STEP_FIELDS[WizardStep.inclusion][index].name == 'strategies'

    def test_photo_asked_with_storage(self):
        names = [f.name for f in STEP_FIELDS[WizardStep.personal]]
        start = names.index('photo_file_id')

        with patch.object(settings, 'STORAGE_URL', 'https://files.example.org'), \
                patch.object(settings, 'STORAGE_KEY', 'secret'):
            index = next_field_index(WizardStep.personal, {}, start=start)

        assert STEP_FIELDS[WizardStep.personal][index].name == 'photo_file_id'

    def test_photo_skipped_without_storage(self):
        """Без хранилища вопрос о фото не задается."""
        names = [f.name for f in STEP_FIELDS[WizardStep.personal]]
        start = names.index('photo_file_id')

        with patch.object(settings, 'STORAGE_URL', ''):
            index = next_field_index(WizardStep.personal, {}, start=start)

        assert STEP_FIELDS[WizardStep.personal][index].name == 'photo_consent'

    def test_prune_answers(self):
        """Ответы на ставшие неприменимыми вопросы удаляются."""
        answers = {'medication': False, 'medication_details': 'Ventolin', 'tetanus': True}
        assert prune_answers(WizardStep.health, answers) == {'medication': False, 'tetanus': True}

    def test_parse_date_answer(self):
        form_field = STEP_FIELDS[WizardStep.personal][2]
        assert parse_text_answer(form_field, '01/02/2018') == '2018-02-01'
        with pytest.raises(ValueError):
            parse_text_answer(form_field, '2018')

    def test_format_answer(self):
        bool_field = STEP_FIELDS[WizardStep.personal][-1]
        date_field = STEP_FIELDS[WizardStep.personal][2]
        assert format_answer(bool_field, True) == 'Oui'
        assert format_answer(date_field, '2018-02-01') == '01/02/2018'
        assert format_answer(date_field, None) == '-'


@pytest.mark.asyncio
class TestSubmitMarker:
    """Тесты защиты от повторного нажатия «Enregistrer»."""

    async def test_second_tap_ignored(self, fsm_context):
        assert await begin_submit(fsm_context) is True
        assert await begin_submit(fsm_context) is False
        assert (await fsm_context.get_data())['submitting'] is True

    async def test_marker_released(self, fsm_context):
        await begin_submit(fsm_context)
        await fsm_context.update_data(submitting=False)
        assert await begin_submit(fsm_context) is True
