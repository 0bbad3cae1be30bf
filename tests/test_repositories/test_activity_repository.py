"""
Тесты для ActivityRepository, TariffConditionRepository и SchoolRepository.
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock
from sqlalchemy.exc import OperationalError

from app.database.models import School
from app.database.repositories.activity_repository import ActivityRepository
from app.database.repositories.tariff_repository import TariffConditionRepository, SchoolRepository

# Совпадает с годом сессий в conftest
SESSION_YEAR = date.today().year + 1


@pytest.mark.asyncio
class TestActivityRepository:
    """Тесты каталога сессий."""

    async def test_get_by_id_loads_relations(self, db_session, test_data):
        repo = ActivityRepository(db_session)
        db_session.expunge_all()

        activity = await repo.get_by_id(test_data["open_session"].id)

        assert activity.stage.title == "Aventuriers"
        assert activity.center.name == "Centre Nord"
        assert activity.tariff_condition.authorized_postal_codes == ["1000"]
        assert activity.remaining_places == 8

    async def test_listing_candidates_skip_finished(self, db_session, test_data):
        """Закончившиеся сессии не попадают в каталог."""
        repo = ActivityRepository(db_session)

        sessions = await repo.get_listing_candidates(date.today())
        ids = {s.id for s in sessions}

        assert test_data["past_session"].id not in ids
        assert ids == {
            test_data["open_session"].id,
            test_data["full_session"].id,
            test_data["older_session"].id,
        }

    async def test_listing_candidates_order(self, db_session, test_data):
        """Сортировка по дате начала, затем по id."""
        repo = ActivityRepository(db_session)
        sessions = await repo.get_listing_candidates(date.today())
        assert [s.start_date for s in sessions] == sorted(s.start_date for s in sessions)
        assert sessions[-1].id == test_data["full_session"].id

    async def test_listing_candidates_by_center(self, db_session, test_data):
        repo = ActivityRepository(db_session)
        sessions = await repo.get_listing_candidates(date.today(), center_id=test_data["south"].id)
        assert [s.id for s in sessions] == [test_data["full_session"].id]

    async def test_listing_candidates_end_date_today(self, db_session, test_data):
        """Сессия, заканчивающаяся сегодня, еще в каталоге."""
        repo = ActivityRepository(db_session)
        sessions = await repo.get_listing_candidates(date(SESSION_YEAR, 7, 12))
        assert [s.id for s in sessions] == [test_data["full_session"].id]

    async def test_inactive_session_hidden(self, db_session, test_data):
        repo = ActivityRepository(db_session)
        test_data["older_session"].is_active = False
        await db_session.commit()

        sessions = await repo.get_listing_candidates(date.today())
        assert test_data["older_session"].id not in {s.id for s in sessions}

    async def test_listing_error_raised(self, db_session):
        repo = ActivityRepository(db_session)
        repo.session = AsyncMock()
        repo.session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(OperationalError):
            await repo.get_listing_candidates(date.today())

    async def test_centers(self, db_session, test_data):
        repo = ActivityRepository(db_session)

        centers = await repo.get_centers()
        assert [c.name for c in centers] == ["Centre Nord", "Centre Sud"]

        center = await repo.get_center(test_data["south"].id)
        assert center.address == "Rue du Sud 2"

    async def test_get_stage(self, db_session, test_data):
        repo = ActivityRepository(db_session)
        stage = await repo.get_stage(test_data["open_session"].stage_id)
        assert stage.age_min == 6
        assert stage.age_max == 8

    async def test_periods_and_weeks(self, db_session, test_data):
        """Только значения актуальных сессий, без повторов."""
        repo = ActivityRepository(db_session)

        assert await repo.get_periods(date.today()) == ["Été"]
        assert await repo.get_weeks(date.today()) == ["S1", "S2"]
        assert await repo.get_weeks(date.today(), center_id=test_data["north"].id) == ["S1"]

    async def test_increment_registrations(self, db_session, test_data):
        repo = ActivityRepository(db_session)
        activity = await repo.get_by_id(test_data["open_session"].id)

        await repo.increment_registrations(activity, count=3)
        await db_session.commit()

        db_session.expunge_all()
        reloaded = await repo.get_by_id(activity.id)
        assert reloaded.current_registrations == 5
        assert reloaded.remaining_places == 5


@pytest.mark.asyncio
class TestTariffRepositories:
    """Тесты условий тарифа и школ."""

    async def test_condition_by_id(self, db_session, test_data):
        repo = TariffConditionRepository(db_session)

        condition = await repo.get_by_id(test_data["condition"].id)
        assert condition.authorized_school_ids == [test_data["school"].id]
        assert await repo.get_by_id(999999) is None

    async def test_condition_error_raised(self, db_session):
        """Ошибка БД пробрасывается для отказа в местном тарифе."""
        repo = TariffConditionRepository(db_session)
        repo.session = AsyncMock()
        repo.session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(OperationalError):
            await repo.get_by_id(1)

    async def test_create_condition(self, db_session):
        repo = TariffConditionRepository(db_session)
        condition = await repo.create(label="Wavre", authorized_postal_codes=["1300", "1301"])

        assert condition.id is not None
        assert condition.authorized_school_ids == []
        assert condition.is_active is True

    async def test_schools(self, db_session, test_data):
        db_session.add(School(name="Athénée Royal", postal_code="1300", is_active=True))
        db_session.add(School(name="Ancienne école", is_active=False))
        await db_session.commit()

        repo = SchoolRepository(db_session)
        schools = await repo.get_active()

        assert [s.name for s in schools] == ["Athénée Royal", "École du Centre"]
        assert (await repo.get_by_id(test_data["school"].id)).postal_code == "1000"
