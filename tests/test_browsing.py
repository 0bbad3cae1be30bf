"""
Тесты шагов каталога: выбор недели и выход из листа ожидания.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from aiogram.types import CallbackQuery

import app.user_panel.keyboards as kb
from app.database.managers.activity_manager import ActivityManager
from app.database.managers.enrollment_manager import EnrollmentManager
from app.routers.user.activities import choose_period, choose_week, leave_waiting_list
from app.schemas.activity import ActivityFilters
from app.user_panel.states import ActivityBrowsing
from app.utils.cart import load_cart


# ==================== Фикстуры ====================
def make_callback(data: str):
    callback = MagicMock(spec=CallbackQuery)
    callback.data = data
    callback.from_user = MagicMock()
    callback.from_user.id = 1001
    callback.answer = AsyncMock()
    callback.message = MagicMock()
    callback.message.edit_text = AsyncMock()
    callback.message.answer = AsyncMock()
    return callback


def session_factory(db_session):
    """Подмена async_session, отдающая тестовую сессию."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = db_session
    factory.return_value.__aexit__.return_value = False
    return factory


# ==================== Выбор недели ====================
@pytest.mark.asyncio
class TestWeekStep:
    """Тесты шага выбора недели."""

    async def test_period_leads_to_weeks(self, db_session, test_data, fsm_context):
        await fsm_context.set_state(ActivityBrowsing.choosing_period)
        await fsm_context.update_data(browse_kid_id=test_data["kid"].id, browse_center_id=None, browse_periods=["Été"])
        callback = make_callback('browse_period:0')

        with patch('app.routers.user.activities.async_session', session_factory(db_session)), \
                patch('app.routers.user.activities.show_offers', new=AsyncMock()) as show_offers:
            await choose_period(callback, fsm_context, test_data["parent"])

        data = await fsm_context.get_data()
        assert await fsm_context.get_state() == ActivityBrowsing.choosing_week.state
        assert data['browse_period'] == "Été"
        assert data['browse_weeks'] == ["S1", "S2"]
        assert data['browse_week'] is None
        assert callback.message.edit_text.await_args.args[0] == "Quelle semaine ?"
        show_offers.assert_not_awaited()

    async def test_unknown_period(self, db_session, test_data, fsm_context):
        await fsm_context.update_data(browse_periods=["Été"])
        callback = make_callback('browse_period:3')

        with patch('app.routers.user.activities.async_session', session_factory(db_session)):
            await choose_period(callback, fsm_context, test_data["parent"])

        callback.answer.assert_awaited_once_with("Période inconnue", show_alert=True)
        assert 'browse_weeks' not in await fsm_context.get_data()

    async def test_week_applied_to_offers(self, test_data, fsm_context):
        await fsm_context.set_state(ActivityBrowsing.choosing_week)
        await fsm_context.update_data(browse_kid_id=test_data["kid"].id, browse_weeks=["S1", "S2"])
        callback = make_callback('browse_week:1')

        with patch('app.routers.user.activities.show_offers', new=AsyncMock()) as show_offers:
            await choose_week(callback, fsm_context, test_data["parent"])

        assert (await fsm_context.get_data())['browse_week'] == "S2"
        show_offers.assert_awaited_once_with(callback.message, fsm_context, test_data["parent"])

    async def test_all_weeks(self, test_data, fsm_context):
        await fsm_context.update_data(browse_weeks=["S1", "S2"], browse_week="S1")
        callback = make_callback('browse_week:all')

        with patch('app.routers.user.activities.show_offers', new=AsyncMock()):
            await choose_week(callback, fsm_context, test_data["parent"])

        assert (await fsm_context.get_data())['browse_week'] is None

    async def test_unknown_week(self, test_data, fsm_context):
        await fsm_context.update_data(browse_weeks=["S1"])
        callback = make_callback('browse_week:5')

        with patch('app.routers.user.activities.show_offers', new=AsyncMock()) as show_offers:
            await choose_week(callback, fsm_context, test_data["parent"])

        callback.answer.assert_awaited_once_with("Semaine inconnue", show_alert=True)
        show_offers.assert_not_awaited()


def test_week_keyboard():
    markup = kb.choose_week(["S1", "S2"])
    callbacks = [row[0].callback_data for row in markup.inline_keyboard]
    assert callbacks == ['browse_week:all', 'browse_week:0', 'browse_week:1']


# ==================== Лист ожидания ====================
@pytest.mark.asyncio
class TestLeaveWaitingList:
    """Тесты выхода из листа ожидания из каталога."""

    async def test_offer_shows_leave_button(self, db_session, test_data, fsm_context):
        kid = test_data["kid"]
        session_id = test_data["full_session"].id
        await EnrollmentManager(db_session).join_waiting_list(test_data["parent"].id, kid.id, session_id)

        offers, _ = await ActivityManager(db_session).list_offers(ActivityFilters(), kid=kid)
        markup = kb.offers_page(offers, 0, 1, await load_cart(fsm_context), kid.id)
        callbacks = [button.callback_data for row in markup.inline_keyboard for button in row]

        assert f"offer_unwait:{session_id}" in callbacks
        assert f"offer_wait:{session_id}" not in callbacks

    async def test_leave(self, db_session, test_data, fsm_context):
        parent_id = test_data["parent"].id
        kid_id = test_data["kid"].id
        session_id = test_data["full_session"].id
        manager = EnrollmentManager(db_session)
        await manager.join_waiting_list(parent_id, kid_id, session_id)
        await fsm_context.update_data(browse_kid_id=kid_id, browse_page=0)
        callback = make_callback(f'offer_unwait:{session_id}')

        with patch('app.routers.user.activities.async_session', session_factory(db_session)), \
                patch('app.routers.user.activities.show_offers', new=AsyncMock()) as show_offers:
            await leave_waiting_list(callback, fsm_context, test_data["parent"])

        callback.answer.assert_awaited_once_with("Vous avez quitté la liste d'attente", show_alert=True)
        show_offers.assert_awaited_once()
        assert await manager.is_on_waiting_list(session_id, kid_id) is False

    async def test_leave_without_entry(self, db_session, test_data, fsm_context):
        await fsm_context.update_data(browse_kid_id=test_data["kid"].id)
        callback = make_callback(f'offer_unwait:{test_data["full_session"].id}')

        with patch('app.routers.user.activities.async_session', session_factory(db_session)), \
                patch('app.routers.user.activities.show_offers', new=AsyncMock()) as show_offers:
            await leave_waiting_list(callback, fsm_context, test_data["parent"])

        callback.answer.assert_awaited_once_with("Inscription en liste d'attente introuvable", show_alert=True)
        show_offers.assert_not_awaited()
