"""
Тесты для KidRepository: выборки детей родителя, разделы анкеты, архив.
"""

import pytest
from datetime import date

from app.database.models import KidActivities, KidDeparture
from app.database.repositories.kid_repository import KidRepository, SECTION_TABLES


@pytest.mark.asyncio
class TestKidRepository:
    """Тесты для специфических методов KidRepository."""

    async def test_get_by_id(self, db_session, test_data):
        repo = KidRepository(db_session)
        kid = await repo.get_by_id(test_data["kid"].id)

        assert kid is not None
        assert kid.full_name == "Léa Dupont"
        assert await repo.get_by_id(999999) is None

    async def test_get_for_user(self, db_session, test_data):
        """Ребенок чужого родителя не возвращается."""
        repo = KidRepository(db_session)
        kid_id = test_data["kid"].id

        own = await repo.get_for_user(kid_id, test_data["parent"].id)
        assert own is not None
        assert own.inclusion is not None
        assert own.has_inclusion_needs is False

        assert await repo.get_for_user(kid_id, test_data["stranger"].id) is None

    async def test_list_for_user(self, db_session, test_data):
        """Сортировка по имени, архивные скрыты по умолчанию."""
        repo = KidRepository(db_session)
        parent_id = test_data["parent"].id

        kids = await repo.list_for_user(parent_id)
        assert [k.first_name for k in kids] == ["Léa", "Tom"]

        assert await repo.archive(test_data["inclusion_kid"].id) is True

        kids = await repo.list_for_user(parent_id)
        assert [k.first_name for k in kids] == ["Léa"]

        all_kids = await repo.list_for_user(parent_id, include_archived=True)
        assert len(all_kids) == 2

    async def test_list_for_stranger(self, db_session, test_data):
        repo = KidRepository(db_session)
        assert await repo.list_for_user(test_data["stranger"].id) == []

    async def test_add(self, db_session, test_data):
        repo = KidRepository(db_session)

        kid = await repo.add(
            user_id=test_data["stranger"].id, last_name="Leroy", first_name="Zoé",
            birth_date=date(2017, 5, 3), address="Rue Haute 4",
            postal_code="5000", locality="Namur",
        )
        await db_session.commit()

        assert kid.id is not None
        assert kid.is_archived is False
        assert kid.is_national_number_valid is False

    async def test_upsert_section(self, db_session, test_data):
        """Раздел создается один раз и затем обновляется."""
        repo = KidRepository(db_session)
        kid_id = test_data["kid"].id

        first = await repo.upsert_section(
            'activities', kid_id, can_participate=True, swim_level="beginner", water_fear=True
        )
        second = await repo.upsert_section(
            'activities', kid_id, can_participate=True, swim_level="advanced", water_fear=False
        )
        await db_session.commit()

        assert second.id == first.id
        assert await repo._count(KidActivities, KidActivities.kid_id == kid_id) == 1

        db_session.expunge_all()
        kid = await repo.get_by_id(kid_id, with_sections=True)
        assert kid.activity_profile.swim_level == "advanced"
        assert kid.activity_profile.water_fear is False

    async def test_departure_pickup_ids_json(self, db_session, test_data):
        repo = KidRepository(db_session)
        kid_id = test_data["kid"].id
        person_id = test_data["person"].id

        await repo.upsert_section('departure', kid_id, leaves_alone=False, pickup_person_ids=[person_id])
        await db_session.commit()

        db_session.expunge_all()
        departure = await repo._get_one(KidDeparture, KidDeparture.kid_id == kid_id)
        assert departure.pickup_person_ids == [person_id]

    async def test_unknown_section(self, db_session, test_data):
        repo = KidRepository(db_session)
        with pytest.raises(KeyError):
            await repo.upsert_section('hobbies', test_data["kid"].id, value=1)

    async def test_set_photo_path(self, db_session, test_data):
        repo = KidRepository(db_session)
        kid_id = test_data["kid"].id

        assert await repo.set_photo_path(kid_id, f"{kid_id}.jpg") is True
        assert await repo.set_photo_path(999999, "x.jpg") is False

        db_session.expunge_all()
        kid = await repo.get_by_id(kid_id)
        assert kid.photo_path == f"{kid_id}.jpg"


def test_section_tables():
    assert set(SECTION_TABLES) == {'health', 'allergies', 'activities', 'departure', 'inclusion'}
