from aiogram.fsm.state import State, StatesGroup


class ParentProfile(StatesGroup):
    """Заполнение профиля родителя"""
    first_name = State()
    last_name = State()
    phone_number = State()
    email = State()
    address = State()
    postal_code = State()
    locality = State()
    confirm = State()


class ProfileFieldEdit(StatesGroup):
    value = State()


class AuthorizedPersonForm(StatesGroup):
    first_name = State()
    last_name = State()
    phone_number = State()
    relationship_label = State()


class KidIntake(StatesGroup):
    """Анкета ребенка: один шаг обрабатывает все поля раздела по очереди"""
    field = State()         # текстовый ответ на текущий вопрос
    choice = State()        # ответ кнопкой (да/нет, выбор)
    photo = State()         # фото ребенка
    review = State()        # раздел заполнен, ждем подтверждения


class ActivityBrowsing(StatesGroup):
    choosing_kid = State()
    choosing_center = State()
    choosing_period = State()
    choosing_week = State()
    viewing_offers = State()
