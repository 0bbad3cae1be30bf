"""
Тесты для базового репозитория.
Используем UserRepository как реализацию BaseRepository для тестирования.
"""

import pytest
from unittest.mock import AsyncMock
from sqlalchemy.exc import IntegrityError, OperationalError

from app.database.models import User, KidHealth
from app.database.repositories.user_repository import UserRepository
from app.database.repositories.kid_repository import KidRepository


@pytest.mark.asyncio
class TestBaseRepository:
    """Тесты для методов BaseRepository на примере UserRepository."""

    async def test_create(self, db_session):
        """Тест создания записи."""
        repo = UserRepository(db_session)

        new_user = await repo._create(User, telegram_id=999999, first_name="Anne")

        assert new_user.id is not None
        assert new_user.telegram_id == 999999

        saved = await repo.get_by_telegram_id(999999)
        assert saved is not None
        assert saved.id == new_user.id

    async def test_create_duplicate_telegram_id(self, db_session, test_data):
        """Дубликат telegram_id: ошибка пробрасывается после отката."""
        repo = UserRepository(db_session)
        telegram_id = test_data["parent"].telegram_id

        with pytest.raises(IntegrityError):
            await repo._create(User, telegram_id=telegram_id, first_name="Autre")

        assert await repo.check_user_exists(telegram_id) is True

    async def test_get_one(self, db_session, test_data):
        repo = UserRepository(db_session)
        parent = test_data["parent"]

        user = await repo._get_one(User, User.id == parent.id)
        assert user is not None
        assert user.telegram_id == parent.telegram_id

        assert await repo._get_one(User, User.id == 999999) is None

    async def test_get_many(self, db_session, test_data):
        repo = UserRepository(db_session)

        users = await repo._get_many(User, order_by=User.telegram_id)
        assert [u.telegram_id for u in users] == [1001, 1002]

        limited = await repo._get_many(User, limit=1)
        assert len(limited) == 1

        assert await repo._get_many(User, User.telegram_id == 5) == []

    async def test_update(self, db_session, test_data):
        repo = UserRepository(db_session)
        stranger = test_data["stranger"]

        count = await repo._update(User, User.id == stranger.id, locality="Namur")
        assert count == 1
        assert (await repo.get_by_id(stranger.id)).locality == "Namur"

    async def test_update_without_data(self, db_session, test_data):
        repo = UserRepository(db_session)
        assert await repo._update(User, User.id == test_data["parent"].id) == 0

    async def test_delete(self, db_session, test_data):
        repo = UserRepository(db_session)
        stranger_id = test_data["stranger"].id

        assert await repo._delete(User, User.id == stranger_id) == 1
        assert await repo._delete(User, User.id == stranger_id) == 0

    async def test_exists_and_count(self, db_session, test_data):
        repo = UserRepository(db_session)
        assert await repo._exists(User, User.telegram_id == 1001) is True
        assert await repo._exists(User, User.telegram_id == 5) is False
        assert await repo._count(User) == 2
        assert await repo._count(User, User.telegram_id == 1002) == 1

    async def test_add_without_commit(self, db_session):
        """_add только flush: после отката записи нет."""
        repo = UserRepository(db_session)
        user = await repo._add(User, telegram_id=555)
        assert user.id is not None

        await db_session.rollback()
        assert await repo.check_user_exists(555) is False

    async def test_upsert(self, db_session, test_data):
        """Раздел анкеты создается, затем обновляется на месте."""
        repo = KidRepository(db_session)
        kid_id = test_data["kid"].id
        data = dict(specific_medical="aucune", past_medical="aucun", parental_consent=True)

        created = await repo._upsert(KidHealth, KidHealth.kid_id == kid_id, kid_id=kid_id, **data)
        updated = await repo._upsert(
            KidHealth, KidHealth.kid_id == kid_id, kid_id=kid_id, **{**data, 'tetanus': True}
        )

        assert updated.id == created.id
        assert updated.tetanus is True
        assert await repo._count(KidHealth) == 1

    async def test_read_error_returns_empty(self, db_session):
        """Ошибка простой выборки: пустой результат вместо исключения."""
        repo = UserRepository(db_session)
        repo.session = AsyncMock()
        repo.session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        assert await repo.get_by_id(1) is None
        assert await repo._get_many(User) == []
        assert await repo._exists(User, User.id == 1) is False
        assert await repo._count(User) == 0

    async def test_query_error_raised(self, db_session):
        """Запросы каталога пробрасывают ошибку."""
        repo = UserRepository(db_session)
        repo.session = AsyncMock()
        repo.session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(OperationalError):
            await repo._execute_query("SELECT 1")
