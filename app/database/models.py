import enum
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, date

from sqlalchemy import (
    BigInteger, String, Integer, Boolean, Text, Date, DateTime, Enum, Float,
    ForeignKey, JSON, Numeric, UniqueConstraint, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.sql import func

from app.database.session import engine, DatabaseConfig
from app.schemas.pricing import PriceType
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class Base(AsyncAttrs, DeclarativeBase):
    """Базовый класс для всех моделей SQLAlchemy"""
    pass


class PaymentStatus(enum.Enum):
    """Статусы оплаты записи"""
    pending = "pending"
    paid = "paid"
    cancelled = "cancelled"


class InvoiceStatus(enum.Enum):
    """Статусы счета"""
    pending = "pending"
    paid = "paid"
    cancelled = "cancelled"


class WaitingListStatus(enum.Enum):
    """Статусы листа ожидания"""
    waiting = "waiting"
    invited = "invited"
    converted = "converted"
    cancelled = "cancelled"


class InclusionRequestStatus(enum.Enum):
    """Статусы запроса на инклюзию"""
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    converted = "converted"


# Таблицы

class User(Base):
    """Модель родителя (владельца аккаунта)"""
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(primary_key=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(25), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    locality: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    kids: Mapped[List["Kid"]] = relationship("Kid", back_populates="user", cascade="all, delete-orphan")
    authorized_persons: Mapped[List["AuthorizedPerson"]] = relationship(
        "AuthorizedPerson",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    PROFILE_FIELDS = ('first_name', 'last_name', 'phone_number', 'email', 'address', 'postal_code', 'locality')

    def __repr__(self) -> str:
        return f"User(id={self.id}, telegram_id={self.telegram_id}, name='{self.full_name}')"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_profile_complete(self) -> bool:
        """Заполнены ли все обязательные поля профиля"""
        return all(getattr(self, field) for field in self.PROFILE_FIELDS)

    @property
    def missing_profile_fields(self) -> List[str]:
        return [field for field in self.PROFILE_FIELDS if not getattr(self, field)]


class School(Base):
    """Модель школы"""
    __tablename__ = 'schools'

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    def __repr__(self) -> str:
        return f"School(id={self.id}, name='{self.name}')"


class Center(Base):
    """Модель центра, где проходят стажи"""
    __tablename__ = 'centers'

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    sessions: Mapped[List["ActivitySession"]] = relationship("ActivitySession", back_populates="center")

    def __repr__(self) -> str:
        return f"Center(id={self.id}, name='{self.name}')"


class Stage(Base):
    """Шаблон стажа (название, возрастные границы, базовая цена)"""
    __tablename__ = 'stages'

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    age_min: Mapped[float] = mapped_column(Float, nullable=False)
    age_max: Mapped[float] = mapped_column(Float, nullable=False)
    base_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    sessions: Mapped[List["ActivitySession"]] = relationship("ActivitySession", back_populates="stage")

    def __repr__(self) -> str:
        return f"Stage(id={self.id}, title='{self.title}', age={self.age_min}-{self.age_max})"

    @property
    def age_range_label(self) -> str:
        return f"{self.age_min:g}-{self.age_max:g} ans"


class TariffCondition(Base):
    """Условие местного тарифа: почтовые индексы и школы"""
    __tablename__ = 'tariff_conditions'

    id: Mapped[int] = mapped_column(primary_key=True)
    label: Mapped[str] = mapped_column(String(150), nullable=False)
    authorized_postal_codes: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    authorized_school_ids: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    def __repr__(self) -> str:
        return f"TariffCondition(id={self.id}, label='{self.label}', active={self.is_active})"


class ActivitySession(Base):
    """Конкретная сессия стажа в центре"""
    __tablename__ = 'activity_sessions'

    id: Mapped[int] = mapped_column(primary_key=True)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False, index=True)
    center_id: Mapped[int] = mapped_column(ForeignKey("centers.id"), nullable=False, index=True)
    tariff_condition_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tariff_conditions.id", ondelete="SET NULL"),
        nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_registrations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_normal: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    price_reduced: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    price_local: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    price_local_reduced: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    period: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    week: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visible_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Relationships
    stage: Mapped["Stage"] = relationship("Stage", back_populates="sessions")
    center: Mapped["Center"] = relationship("Center", back_populates="sessions")
    tariff_condition: Mapped[Optional["TariffCondition"]] = relationship("TariffCondition")
    registrations: Mapped[List["Registration"]] = relationship("Registration", back_populates="activity_session")

    def __repr__(self) -> str:
        return (
            f"ActivitySession(id={self.id}, stage={self.stage_id}, center={self.center_id}, "
            f"{self.start_date}..{self.end_date}, {self.current_registrations}/{self.capacity})"
        )

    @property
    def remaining_places(self) -> int:
        return self.capacity - self.current_registrations

    @property
    def is_full(self) -> bool:
        return self.current_registrations >= self.capacity

    @property
    def has_reduced_price(self) -> bool:
        return bool(self.price_reduced and self.price_reduced > 0)


class Kid(Base):
    """Модель ребенка"""
    __tablename__ = 'kids'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    national_number: Mapped[Optional[str]] = mapped_column(String(11), nullable=True)
    is_national_number_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    postal_code: Mapped[str] = mapped_column(String(10), nullable=False)
    locality: Mapped[str] = mapped_column(String(100), nullable=False)
    school_id: Mapped[Optional[int]] = mapped_column(ForeignKey("schools.id", ondelete="SET NULL"), nullable=True)
    photo_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    photo_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="kids")
    school: Mapped[Optional["School"]] = relationship("School")
    health: Mapped[Optional["KidHealth"]] = relationship(
        "KidHealth", back_populates="kid", uselist=False, cascade="all, delete-orphan"
    )
    allergies: Mapped[Optional["KidAllergies"]] = relationship(
        "KidAllergies", back_populates="kid", uselist=False, cascade="all, delete-orphan"
    )
    activity_profile: Mapped[Optional["KidActivities"]] = relationship(
        "KidActivities", back_populates="kid", uselist=False, cascade="all, delete-orphan"
    )
    departure: Mapped[Optional["KidDeparture"]] = relationship(
        "KidDeparture", back_populates="kid", uselist=False, cascade="all, delete-orphan"
    )
    inclusion: Mapped[Optional["KidInclusion"]] = relationship(
        "KidInclusion", back_populates="kid", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"Kid(id={self.id}, name='{self.full_name}', user={self.user_id})"

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def has_inclusion_needs(self) -> bool:
        return bool(self.inclusion and self.inclusion.has_needs)


class KidHealth(Base):
    """Медицинские данные ребенка"""
    __tablename__ = 'kid_health'

    id: Mapped[int] = mapped_column(primary_key=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), unique=True, nullable=False)
    specific_medical: Mapped[str] = mapped_column(Text, nullable=False)
    past_medical: Mapped[str] = mapped_column(Text, nullable=False)
    medication: Mapped[bool] = mapped_column(Boolean, default=False)
    medication_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    medication_autonomy: Mapped[bool] = mapped_column(Boolean, default=False)
    tetanus: Mapped[bool] = mapped_column(Boolean, default=False)
    doctor_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    doctor_phone: Mapped[Optional[str]] = mapped_column(String(25), nullable=True)
    parental_consent: Mapped[bool] = mapped_column(Boolean, default=False)
    medication_form_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    kid: Mapped["Kid"] = relationship("Kid", back_populates="health")


class KidAllergies(Base):
    """Аллергии и диета ребенка"""
    __tablename__ = 'kid_allergies'

    id: Mapped[int] = mapped_column(primary_key=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), unique=True, nullable=False)
    has_allergies: Mapped[bool] = mapped_column(Boolean, default=False)
    allergies_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    allergies_consequences: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_diet: Mapped[bool] = mapped_column(Boolean, default=False)
    diet_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    kid: Mapped["Kid"] = relationship("Kid", back_populates="allergies")


class KidActivities(Base):
    """Ограничения по активностям и плавание"""
    __tablename__ = 'kid_activities'

    id: Mapped[int] = mapped_column(primary_key=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), unique=True, nullable=False)
    can_participate: Mapped[bool] = mapped_column(Boolean, default=True)
    restriction_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    swim_level: Mapped[str] = mapped_column(String(20), nullable=False)
    water_fear: Mapped[bool] = mapped_column(Boolean, default=False)
    other_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    kid: Mapped["Kid"] = relationship("Kid", back_populates="activity_profile")


class KidDeparture(Base):
    """Уход ребенка: самостоятельно или с доверенными лицами"""
    __tablename__ = 'kid_departure'

    id: Mapped[int] = mapped_column(primary_key=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), unique=True, nullable=False)
    leaves_alone: Mapped[bool] = mapped_column(Boolean, default=False)
    departure_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    pickup_person_ids: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)

    kid: Mapped["Kid"] = relationship("Kid", back_populates="departure")


class KidInclusion(Base):
    """Особые потребности ребенка"""
    __tablename__ = 'kid_inclusion'

    id: Mapped[int] = mapped_column(primary_key=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), unique=True, nullable=False)
    has_needs: Mapped[bool] = mapped_column(Boolean, default=False)
    situation_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    impact_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    needs_dedicated_staff: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    staff_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    strategies: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assistive_devices: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stress_signals: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    strengths: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    previous_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    kid: Mapped["Kid"] = relationship("Kid", back_populates="inclusion")


class AuthorizedPerson(Base):
    """Доверенное лицо, которое может забрать ребенка"""
    __tablename__ = 'authorized_persons'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(25), nullable=False)
    relationship_label: Mapped[str] = mapped_column("relationship", String(50), nullable=False)
    photo_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    user: Mapped["User"] = relationship("User", back_populates="authorized_persons")

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name} ({self.relationship_label})"


class Invoice(Base):
    """Счет на отложенную оплату"""
    __tablename__ = 'invoices'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(Enum(InvoiceStatus), default=InvoiceStatus.pending, index=True)
    communication: Mapped[str] = mapped_column(String(30), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    registrations: Mapped[List["Registration"]] = relationship("Registration", back_populates="invoice")

    def __repr__(self) -> str:
        return f"Invoice(id={self.id}, number='{self.invoice_number}', amount={self.amount}, status={self.status.value})"

    @property
    def is_overdue(self) -> bool:
        return self.status == InvoiceStatus.pending and self.due_date < date.today()


class Registration(Base):
    """Запись ребенка на сессию"""
    __tablename__ = 'registrations'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_session_id: Mapped[int] = mapped_column(ForeignKey("activity_sessions.id"), nullable=False, index=True)
    invoice_id: Mapped[Optional[int]] = mapped_column(ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)
    price_type: Mapped[PriceType] = mapped_column(Enum(PriceType), default=PriceType.normal, nullable=False)
    reduced_declaration: Mapped[bool] = mapped_column(Boolean, default=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.pending, index=True
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    checkout_session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    kid: Mapped["Kid"] = relationship("Kid")
    activity_session: Mapped["ActivitySession"] = relationship("ActivitySession", back_populates="registrations")
    invoice: Mapped[Optional["Invoice"]] = relationship("Invoice", back_populates="registrations")

    def __repr__(self) -> str:
        return (
            f"Registration(id={self.id}, kid={self.kid_id}, session={self.activity_session_id}, "
            f"status={self.payment_status.value})"
        )


class WaitingListEntry(Base):
    """Место в листе ожидания"""
    __tablename__ = 'waiting_list'
    __table_args__ = (
        UniqueConstraint('activity_session_id', 'kid_id', name='uq_waiting_list_session_kid'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    activity_session_id: Mapped[int] = mapped_column(ForeignKey("activity_sessions.id"), nullable=False, index=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[WaitingListStatus] = mapped_column(
        Enum(WaitingListStatus), default=WaitingListStatus.waiting, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    invited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    kid: Mapped["Kid"] = relationship("Kid")
    activity_session: Mapped["ActivitySession"] = relationship("ActivitySession")


class InclusionRequest(Base):
    """Запрос на инклюзию ребенка с особыми потребностями"""
    __tablename__ = 'inclusion_requests'

    id: Mapped[int] = mapped_column(primary_key=True)
    activity_session_id: Mapped[int] = mapped_column(ForeignKey("activity_sessions.id"), nullable=False, index=True)
    kid_id: Mapped[int] = mapped_column(ForeignKey("kids.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[InclusionRequestStatus] = mapped_column(
        Enum(InclusionRequestStatus), default=InclusionRequestStatus.pending, index=True
    )
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    kid: Mapped["Kid"] = relationship("Kid")
    activity_session: Mapped["ActivitySession"] = relationship("ActivitySession")


# Функция для создания всех таблиц
async def init_models():
    """Инициализация базы данных"""
    logger.info("Инициализация базы данных...")

    try:
        async with engine.begin() as conn:
            for sql_setting, description in DatabaseConfig.PRAGMAS:
                try:
                    await conn.execute(text(sql_setting))
                    logger.debug(f"Применено: {description}")
                except Exception as e:
                    logger.warning(f"Не удалось применить {description}: {e}")

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Таблицы созданы/проверены")

            indexes_sql = [
                "CREATE INDEX IF NOT EXISTS idx_registrations_kid_session ON registrations(kid_id, activity_session_id)",
                "CREATE INDEX IF NOT EXISTS idx_sessions_center_dates ON activity_sessions(center_id, start_date, end_date)",
            ]

            for index_sql in indexes_sql:
                try:
                    await conn.execute(text(index_sql))
                except Exception as e:
                    logger.warning(f"Не удалось создать индекс: {e}")

        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            )
            tables = [row[0] for row in result.fetchall()]
            logger.info(f"Всего таблиц в БД: {len(tables)}")
            logger.debug(f"Таблицы: {', '.join(tables)}")

        logger.info("База данных успешно инициализирована")

    except Exception as e:
        logger.critical(f"Ошибка инициализации БД: {e}", exc_info=True)
        raise
