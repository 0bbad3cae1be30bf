from .user_repository import UserRepository
from .kid_repository import KidRepository
from .activity_repository import ActivityRepository
from .tariff_repository import TariffConditionRepository, SchoolRepository
from .registration_repository import RegistrationRepository, InvoiceRepository
from .enrollment_repository import WaitingListRepository, InclusionRequestRepository
from .authorized_person_repository import AuthorizedPersonRepository

__all__ = [
    'UserRepository',
    'KidRepository',
    'ActivityRepository',
    'TariffConditionRepository',
    'SchoolRepository',
    'RegistrationRepository',
    'InvoiceRepository',
    'WaitingListRepository',
    'InclusionRequestRepository',
    'AuthorizedPersonRepository',
]
