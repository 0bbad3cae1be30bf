import sys
import warnings
import pytest

from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

# ========== НАСТРОЙКА ПУТЕЙ ИМПОРТА ==========
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

try:
    from app.database.models import (
        Base, User, School, Center, Stage, TariffCondition, ActivitySession,
        Kid, KidInclusion, AuthorizedPerson
    )
except ImportError as e:
    print(f"Ошибка импорта: {e}")
    print(f"Project root: {project_root}")
    raise


# Год сессий каталога: всегда в будущем относительно сегодняшней даты
SESSION_YEAR = date.today().year + 1


# ========== ГЛОБАЛЬНЫЕ ПРОВЕРКИ БЕЗОПАСНОСТИ ==========

def pytest_configure(config):
    """Конфигурация pytest перед запуском тестов."""

    # Проверка безопасности: предупреждение о production БД
    import os
    if os.path.exists("database.db"):
        warnings.warn(
            "Обнаружен файл database.db. Убедитесь, что тесты используют :memory: БД, а не production.",
            RuntimeWarning
        )

    config.addinivalue_line(
        "markers",
        "integration: тесты, требующие реальной БД или внешних сервисов"
    )
    config.addinivalue_line(
        "markers",
        "database: тесты, работающие с базой данных"
    )


# ========== Фикстуры для базы данных ==========

@pytest.fixture
async def async_engine():
    """
    Асинхронный движок тестовой БД.
    SQLite в памяти, одно соединение на тест (StaticPool).
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={'check_same_thread': False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(async_engine):
    """
    Тестовая сессия БД.
    Менеджеры делают commit, поэтому каждый тест получает свою базу.
    """
    session_factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ========== Фикстуры для AIOGram ==========

@pytest.fixture
def mock_message():
    """Мок для сообщения Telegram."""
    message = AsyncMock()
    message.from_user = MagicMock()
    message.from_user.id = 1001
    message.from_user.first_name = "Marie"
    message.from_user.last_name = "Dupont"
    message.chat = MagicMock()
    message.chat.id = 1001
    message.text = "test message"
    message.answer = AsyncMock()
    message.answer_photo = AsyncMock()
    return message


@pytest.fixture
def mock_state():
    """Мок для FSMContext."""
    state = AsyncMock()
    state.set_state = AsyncMock()
    state.get_state = AsyncMock(return_value=None)
    state.clear = AsyncMock()
    state.update_data = AsyncMock()
    state.get_data = AsyncMock(return_value={})
    return state


@pytest.fixture
def fsm_context():
    """Настоящий FSMContext на MemoryStorage."""
    storage = MemoryStorage()
    return FSMContext(storage=storage, key=StorageKey(bot_id=1, chat_id=1001, user_id=1001))


# ========== Тестовые данные ==========

@pytest.fixture
async def test_data(db_session):
    """
    Каталог, родитель с детьми и доверенным лицом.
    Связи задаются явно, чтобы не было ленивых загрузок. Данные
    фиксируются commit: откат внутри менеджеров их не затрагивает.
    """
    parent = User(
        telegram_id=1001,
        first_name="Marie",
        last_name="Dupont",
        phone_number="+32470123456",
        email="marie.dupont@example.be",
        address="Rue de la Loi 16",
        postal_code="1000",
        locality="Bruxelles",
    )
    stranger = User(telegram_id=1002, first_name="Jean")
    school = School(name="École du Centre", postal_code="1000", is_active=True)
    north = Center(name="Centre Nord", address="Rue du Nord 1", is_active=True)
    south = Center(name="Centre Sud", address="Rue du Sud 2", is_active=True)
    young = Stage(title="Aventuriers", age_min=6, age_max=8, is_active=True)
    older = Stage(title="Robotique", age_min=10, age_max=12, is_active=True)

    db_session.add_all([parent, stranger, school, north, south, young, older])
    await db_session.flush()

    condition = TariffCondition(
        label="Bruxelles-Ville",
        authorized_postal_codes=["1000"],
        authorized_school_ids=[school.id],
        is_active=True,
    )
    db_session.add(condition)
    await db_session.flush()

    open_session = ActivitySession(
        stage=young, center=north, tariff_condition=condition,
        start_date=date(SESSION_YEAR, 7, 1), end_date=date(SESSION_YEAR, 7, 5),
        capacity=10, current_registrations=2,
        price_normal=Decimal('100'), price_reduced=Decimal('80'),
        price_local=Decimal('90'), price_local_reduced=Decimal('70'),
        period="Été", week="S1", is_active=True,
    )
    full_session = ActivitySession(
        stage=young, center=south, tariff_condition=None,
        start_date=date(SESSION_YEAR, 7, 8), end_date=date(SESSION_YEAR, 7, 12),
        capacity=5, current_registrations=5,
        price_normal=Decimal('120'),
        period="Été", week="S2", is_active=True,
    )
    older_session = ActivitySession(
        stage=older, center=north, tariff_condition=None,
        start_date=date(SESSION_YEAR, 7, 1), end_date=date(SESSION_YEAR, 7, 5),
        capacity=12, current_registrations=0,
        price_normal=Decimal('150'),
        period="Été", week="S1", is_active=True,
    )
    past_session = ActivitySession(
        stage=young, center=north, tariff_condition=None,
        start_date=date(SESSION_YEAR - 2, 7, 1), end_date=date(SESSION_YEAR - 2, 7, 5),
        capacity=10, current_registrations=0,
        price_normal=Decimal('100'),
        period="Pâques", week="S1", is_active=True,
    )
    db_session.add_all([open_session, full_session, older_session, past_session])

    # 7.5 лет на начало сессий
    kid = Kid(
        user_id=parent.id, last_name="Dupont", first_name="Léa",
        birth_date=date(SESSION_YEAR - 7, 1, 1),
        address="Rue de la Loi 16", postal_code="1000", locality="Bruxelles",
        photo_consent=True, is_archived=False,
        health=None, allergies=None, activity_profile=None, departure=None,
        inclusion=KidInclusion(has_needs=False),
    )
    inclusion_kid = Kid(
        user_id=parent.id, last_name="Dupont", first_name="Tom",
        birth_date=date(SESSION_YEAR - 7, 3, 1),
        address="Avenue des Fleurs 8", postal_code="1300", locality="Wavre",
        photo_consent=False, is_archived=False,
        health=None, allergies=None, activity_profile=None, departure=None,
        inclusion=KidInclusion(
            has_needs=True,
            situation_details="Trouble du spectre autistique",
            impact_details="Besoin de moments calmes",
            needs_dedicated_staff=False,
        ),
    )
    person = AuthorizedPerson(
        user_id=parent.id, first_name="Paul", last_name="Dupont",
        phone_number="+32470999888", relationship_label="Grand-père",
    )
    db_session.add_all([kid, inclusion_kid, person])
    await db_session.commit()

    return {
        "parent": parent,
        "stranger": stranger,
        "school": school,
        "north": north,
        "south": south,
        "condition": condition,
        "open_session": open_session,
        "full_session": full_session,
        "older_session": older_session,
        "past_session": past_session,
        "kid": kid,
        "inclusion_kid": inclusion_kid,
        "person": person,
    }


# ========== Настройки pytest ==========

def pytest_collection_modifyitems(items):
    """Изменяем имена тестов для лучшего отображения."""
    for item in items:
        if hasattr(item, 'cls') and item.cls:
            item._nodeid = item.nodeid.replace(f"{item.cls.__name__}.", "")
