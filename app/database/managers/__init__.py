from .user_manager import UserManager
from .kid_manager import KidManager
from .activity_manager import ActivityManager
from .checkout_manager import CheckoutManager
from .dashboard_manager import DashboardManager
from .enrollment_manager import EnrollmentManager

__all__ = [
    'UserManager',
    'KidManager',
    'ActivityManager',
    'CheckoutManager',
    'DashboardManager',
    'EnrollmentManager',
]
