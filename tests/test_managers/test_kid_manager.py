"""
Тесты KidManager: сохранение анкеты одной транзакцией, архив, фото.
"""

import pytest
from unittest.mock import AsyncMock
from pydantic import ValidationError

from app.database.models import Kid
from app.database.managers.kid_manager import KidManager
from app.database.repositories.authorized_person_repository import AuthorizedPersonRepository
from app.utils.intake_wizard import IntakeWizard, StepResult, STEP_ORDER


def make_draft(pickup_ids, **personal):
    return {
        'personal': {
            'last_name': 'leroy',
            'first_name': 'zoé',
            'birth_date': '2017-05-03',
            'national_number': '17.05.03-123.45',
            'address': 'Rue Haute 4',
            'postal_code': '5000',
            'locality': 'Namur',
            'photo_consent': True,
            **personal,
        },
        'health': {'specific_medical': 'Aucune', 'past_medical': 'Aucun', 'parental_consent': True},
        'allergies': {'has_allergies': True, 'allergies_details': 'Arachides', 'allergies_consequences': 'Urticaire'},
        'activities': {'can_participate': True, 'swim_level': 'bien'},
        'departure': {'leaves_alone': False, 'pickup_person_ids': pickup_ids},
        'inclusion': {'has_needs': False},
    }


def storage_mock():
    storage = AsyncMock()
    storage.upload.side_effect = lambda path, data, mime_type: path
    storage.create_signed_url.return_value = "https://files.example.org/signed/photo"
    return storage


@pytest.mark.asyncio
class TestSaveIntake:
    """Тесты сохранения анкеты."""

    async def test_create_kid(self, db_session, test_data):
        manager = KidManager(db_session)
        parent_id = test_data["parent"].id
        person_id = test_data["person"].id

        kid_id = await manager.save_intake(parent_id, make_draft([person_id]))

        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        assert kid.full_name == "Zoé Leroy"
        assert kid.national_number == "17050312345"
        assert kid.health.parental_consent is True
        assert kid.allergies.allergies_details == "Arachides"
        assert kid.activity_profile.swim_level == "bien"
        assert kid.departure.pickup_person_ids == [person_id]
        assert kid.inclusion.has_needs is False
        assert kid.photo_path is None

    async def test_foreign_pickup_persons_dropped(self, db_session, test_data):
        """Доверенные лица другого родителя отбрасываются."""
        parent_id = test_data["parent"].id
        person_id = test_data["person"].id
        foreign = await AuthorizedPersonRepository(db_session).create(
            user_id=test_data["stranger"].id, first_name="Luc", last_name="Noel",
            phone_number="+32470000111", relationship_label="Oncle",
        )
        foreign_id = foreign.id

        manager = KidManager(db_session)
        kid_id = await manager.save_intake(parent_id, make_draft([person_id, foreign_id]))

        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        assert kid.departure.pickup_person_ids == [person_id]

    async def test_create_with_photo(self, db_session, test_data):
        storage = storage_mock()
        manager = KidManager(db_session, storage=storage)
        parent_id = test_data["parent"].id

        draft = make_draft([test_data["person"].id], photo_file_id="AgAD", photo_mime="image/jpeg")
        kid_id = await manager.save_intake(parent_id, draft, photo=b"\xff\xd8")

        storage.upload.assert_awaited_once_with(f"{kid_id}.jpg", b"\xff\xd8", "image/jpeg")
        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        assert kid.photo_path == f"{kid_id}.jpg"

    async def test_photo_without_storage_skipped(self, db_session, test_data):
        """Хранилище не настроено: ребенок сохраняется без фото."""
        manager = KidManager(db_session)
        parent_id = test_data["parent"].id
        draft = make_draft([test_data["person"].id], photo_file_id="AgAD", photo_mime="image/png")

        kid_id = await manager.save_intake(parent_id, draft, photo=b"\x89PNG")

        assert await manager.kid_repo._count(Kid) == 3
        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        assert kid.photo_path is None
        assert kid.health is not None

    async def test_wizard_with_photo_without_storage(self, db_session, test_data):
        """Анкета с фото без хранилища сохраняется с первой попытки."""
        parent_id = test_data["parent"].id
        draft = make_draft([test_data["person"].id], photo_file_id="AgAD", photo_mime="image/jpeg")

        async def submitter(merged, kid_id):
            return await KidManager(db_session, None).save_intake(parent_id, merged, kid_id=kid_id, photo=b"\xff\xd8")

        wizard = IntakeWizard(submitter=submitter)
        result = None
        for step in STEP_ORDER:
            result = await wizard.complete_step(step, draft[step.value])

        assert result == StepResult.submitted
        assert wizard.submit_error is None
        assert await KidManager(db_session).kid_repo._count(Kid) == 3

    async def test_upload_error_rolls_back(self, db_session, test_data):
        storage = storage_mock()
        storage.upload.side_effect = ConnectionError("storage down")
        manager = KidManager(db_session, storage=storage)
        parent_id = test_data["parent"].id
        draft = make_draft([test_data["person"].id], photo_file_id="AgAD", photo_mime="image/jpeg")

        with pytest.raises(ConnectionError):
            await manager.save_intake(parent_id, draft, photo=b"\xff\xd8")

        assert await manager.kid_repo._count(Kid) == 2

    async def test_invalid_draft(self, db_session, test_data):
        manager = KidManager(db_session)
        draft = make_draft([])

        with pytest.raises(ValidationError):
            await manager.save_intake(test_data["parent"].id, draft)

    async def test_update_kid(self, db_session, test_data):
        """Редактирование: личные данные меняются, разделы создаются или обновляются."""
        manager = KidManager(db_session)
        parent_id = test_data["parent"].id
        kid_id = test_data["kid"].id

        draft = make_draft([test_data["person"].id], first_name="Léa", last_name="Dupont", postal_code="1000")
        saved_id = await manager.save_intake(parent_id, draft, kid_id=kid_id)

        assert saved_id == kid_id
        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        assert kid.address == "Rue Haute 4"
        assert kid.health.specific_medical == "Aucune"
        assert len(await manager.list_kids(parent_id)) == 2

    async def test_update_foreign_kid(self, db_session, test_data):
        manager = KidManager(db_session)
        stranger_id = test_data["stranger"].id
        kid_id = test_data["kid"].id

        draft = make_draft([])
        draft['departure'] = {'leaves_alone': True, 'departure_time': '17h00'}

        with pytest.raises(LookupError):
            await manager.save_intake(stranger_id, draft, kid_id=kid_id)


@pytest.mark.asyncio
class TestKidLifecycle:
    """Тесты архива, фото и режима редактирования."""

    async def test_list_kids(self, db_session, test_data):
        manager = KidManager(db_session)
        kids = await manager.list_kids(test_data["parent"].id)
        assert [k.first_name for k in kids] == ["Léa", "Tom"]

    async def test_archive(self, db_session, test_data):
        manager = KidManager(db_session)
        parent_id = test_data["parent"].id

        archived, error = await manager.archive(parent_id, test_data["kid"].id)

        assert archived is True
        assert error is None
        assert [k.first_name for k in await manager.list_kids(parent_id)] == ["Tom"]

    async def test_archive_foreign(self, db_session, test_data):
        manager = KidManager(db_session)
        archived, error = await manager.archive(test_data["stranger"].id, test_data["kid"].id)

        assert archived is False
        assert error == "Enfant introuvable"

    async def test_photo_url(self, db_session, test_data):
        storage = storage_mock()
        manager = KidManager(db_session, storage=storage)
        kid = test_data["kid"]

        assert await manager.get_photo_url(kid) is None

        kid.photo_path = f"{kid.id}.jpg"
        assert await manager.get_photo_url(kid) == "https://files.example.org/signed/photo"
        storage.create_signed_url.assert_awaited_once_with(f"{kid.id}.jpg")

    async def test_photo_url_without_storage(self, db_session, test_data):
        kid = test_data["kid"]
        kid.photo_path = "1.jpg"
        assert await KidManager(db_session).get_photo_url(kid) is None

    async def test_draft_from_saved_kid(self, db_session, test_data):
        """Анкета для редактирования содержит только сохраненные разделы."""
        draft = KidManager.draft_from_kid(test_data["kid"])

        assert set(draft) == {'personal', 'inclusion'}
        assert draft['personal']['first_name'] == "Léa"
        assert draft['personal']['birth_date'] == test_data["kid"].birth_date.isoformat()
        assert draft['inclusion']['has_needs'] is False

    async def test_draft_round_trip(self, db_session, test_data):
        manager = KidManager(db_session)
        parent_id = test_data["parent"].id
        kid_id = await manager.save_intake(parent_id, make_draft([test_data["person"].id]))

        db_session.expunge_all()
        kid = await manager.get_kid(parent_id, kid_id)
        draft = KidManager.draft_from_kid(kid)

        assert set(draft) == {'personal', 'health', 'allergies', 'activities', 'departure', 'inclusion'}
        assert draft['personal']['national_number'] == "17050312345"
        assert draft['departure']['pickup_person_ids'] == kid.departure.pickup_person_ids
