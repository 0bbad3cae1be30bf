"""
Инициализация всех роутеров приложения
"""

from .user.user_main import router as user_main_router
from .user.activities import router as activities_router
from .user.cart import router as cart_router
from .user.checkout import router as checkout_router
from .user.dashboard import router as dashboard_router
from .user.kids import router as kids_router
from .user.profile import router as profile_router
from .user.authorized_persons import router as authorized_persons_router
from .user.kid_intake import router as kid_intake_router

from .fallback import router as fallback_router


__all__ = [
    'user_main_router',
    'activities_router',
    'cart_router',
    'checkout_router',
    'dashboard_router',
    'kids_router',
    'profile_router',
    'authorized_persons_router',
    'kid_intake_router',
    'fallback_router',
]

def setup_routers(dp):
    """
    Настройка всех роутеров в правильном порядке
    Кнопки главного меню обрабатываются раньше роутеров с текстовым вводом в FSM
    """
    dp.include_router(user_main_router)
    dp.include_router(activities_router)
    dp.include_router(cart_router)
    dp.include_router(checkout_router)
    dp.include_router(dashboard_router)
    dp.include_router(kids_router)

    # Роутеры с вводом текста в состояниях
    dp.include_router(profile_router)
    dp.include_router(authorized_persons_router)
    dp.include_router(kid_intake_router)

    # Фолбэк роутер (всегда последний)
    dp.include_router(fallback_router)
