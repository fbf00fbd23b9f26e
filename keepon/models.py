import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .shared.dates import utcnow

Money = Numeric(12, 2)


def generate_id():
    return str(uuid.uuid4())


class User(Base):
    """Login identity. Trainers log in with a password, clients with an emailed code."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), index=True, nullable=True)
    password_hash = Column(String(255), nullable=True)
    user_type = Column(String(20), nullable=False)  # trainer, client
    created_at = Column(DateTime, default=utcnow, nullable=False)

    access_tokens = relationship(
        "AccessToken", back_populates="user", cascade="all, delete-orphan"
    )


class AccessToken(Base):
    __tablename__ = "access_tokens"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # api, client_dashboard
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="access_tokens")


class Trainer(Base):
    __tablename__ = "trainers"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)  # shown to clients, replies go here
    country = Column(String(2), nullable=False)  # ISO 3166-1 alpha-2, also the charge country
    timezone = Column(String(64), nullable=False, default="UTC")
    locale = Column(String(20), nullable=False, default="en-US")
    send_receipts = Column(Boolean, default=True, nullable=False)
    subscription_status = Column(String(20), default="trial", nullable=False)  # trial, subscribed, limited
    stripe_account_id = Column(String(255), nullable=True)
    stripe_account_type = Column(String(20), nullable=True)  # standard, custom, express
    stripe_payments_blocked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User")
    clients = relationship("Client", back_populates="trainer", cascade="all, delete-orphan")


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), default="current", nullable=False)  # current, lead, past
    notes = Column(Text, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    trainer = relationship("Trainer", back_populates="clients")
    user = relationship("User", cascade="all, delete", single_parent=True)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Money, nullable=False)
    product_type = Column(String(20), nullable=False)  # service, item, creditPack
    credit_count = Column(Integer, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Sale(Base):
    __tablename__ = "sales"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    note = Column(Text, nullable=True)
    due_time = Column(DateTime, nullable=True)
    payment_status = Column(String(20), default="none", nullable=True)  # none, requested, paid
    payment_request_time = Column(DateTime, nullable=True)
    payment_request_pass_on_transaction_fee = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    client = relationship("Client")
    trainer = relationship("Trainer")
    sale_product = relationship(
        "SaleProduct", back_populates="sale", uselist=False, cascade="all, delete-orphan"
    )
    payments = relationship("Payment", back_populates="sale", cascade="all, delete-orphan")


class SaleProduct(Base):
    __tablename__ = "sale_products"

    id = Column(String(36), primary_key=True, default=generate_id)
    sale_id = Column(String(36), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, unique=True)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    price = Column(Money, nullable=False)
    product_type = Column(String(20), nullable=False, default="service")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    sale = relationship("Sale", back_populates="sale_product")


class Payment(Base):
    """A payment against a sale or a payment plan.

    payment_type is one of manual, stripe, creditPack, subscription.
    """

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = Column(String(36), ForeignKey("sales.id", ondelete="CASCADE"), nullable=True, index=True)
    payment_plan_id = Column(
        String(36), ForeignKey("payment_plans.id", ondelete="SET NULL"), nullable=True, index=True
    )
    payment_type = Column(String(20), nullable=False)
    amount = Column(Money, nullable=False)
    amount_refunded = Column(Money, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    manual_method = Column(String(20), nullable=True)  # cash, electronic
    specific_method_name = Column(String(255), nullable=True)
    fee = Column(Money, nullable=True)
    fee_passed_on = Column(Boolean, nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_charge_id = Column(String(255), nullable=True)
    transaction_time = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sale = relationship("Sale", back_populates="payments")


class PaymentPlan(Base):
    __tablename__ = "payment_plans"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="pending", nullable=True)  # pending, active, paused, cancelled, ended
    amount = Column(Money, nullable=False)
    frequency_weekly_interval = Column(Integer, nullable=False, default=1)
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    accepted_amount = Column(Money, nullable=True)
    accepted_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    client = relationship("Client")
    trainer = relationship("Trainer")
    payments = relationship(
        "PaymentPlanPayment",
        back_populates="payment_plan",
        cascade="all, delete-orphan",
        order_by="PaymentPlanPayment.date",
    )
    acceptances = relationship("PaymentPlanAcceptance", cascade="all, delete-orphan")


class PaymentPlanAcceptance(Base):
    __tablename__ = "payment_plan_acceptances"

    id = Column(String(36), primary_key=True, default=generate_id)
    payment_plan_id = Column(
        String(36), ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, default=utcnow, nullable=False)
    ip_address = Column(String(64), nullable=True)
    amount = Column(Money, nullable=False)
    end = Column(DateTime, nullable=False)


class PaymentPlanPayment(Base):
    __tablename__ = "payment_plan_payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    payment_plan_id = Column(
        String(36), ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False)
    amount = Column(Money, nullable=False)
    amount_outstanding = Column(Money, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, paid, rejected, cancelled
    retry_count = Column(Integer, default=0, nullable=False)
    last_retry_time = Column(DateTime, nullable=True)
    fee = Column(Money, nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    payment_plan = relationship("PaymentPlan", back_populates="payments")


class SessionSeries(Base):
    __tablename__ = "session_series"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    price = Column(Money, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    session_type = Column(String(20), nullable=False, default="group")  # single, group
    created_at = Column(DateTime, default=utcnow, nullable=False)

    sessions = relationship("TrainingSession", back_populates="series", cascade="all, delete-orphan")


class TrainingSession(Base):
    """One scheduled appointment, part of a series"""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    session_series_id = Column(
        String(36), ForeignKey("session_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    maximum_attendance = Column(Integer, nullable=True)
    location = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    series = relationship("SessionSeries", back_populates="sessions")
    trainer = relationship("Trainer")
    client_sessions = relationship(
        "ClientSession", back_populates="session", cascade="all, delete-orphan"
    )


class ClientSession(Base):
    """A client's place in a session: an invitation or a booking.

    state is one of invited, accepted, declined, confirmed, cancelled.
    """

    __tablename__ = "client_sessions"
    __table_args__ = (UniqueConstraint("session_id", "client_id", name="uq_client_session"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = Column(String(36), ForeignKey("sales.id", ondelete="SET NULL"), nullable=True)
    state = Column(String(20), nullable=False)
    price = Column(Money, nullable=True)
    invite_time = Column(DateTime, nullable=True)
    accept_time = Column(DateTime, nullable=True)
    decline_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    session = relationship("TrainingSession", back_populates="client_sessions")
    client = relationship("Client")
    sale = relationship("Sale")


class Mission(Base):
    """Onboarding goal for a trainer, e.g. createActiveSubscription"""

    __tablename__ = "missions"

    id = Column(String(64), primary_key=True)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), primary_key=True)
    completed_at = Column(DateTime, nullable=True)
    reward_id = Column(String(36), ForeignKey("rewards.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_type = Column(String(50), nullable=False)
    claimed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    payment_plan_id = Column(String(36), ForeignKey("payment_plans.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="default")  # default, success, failure
    notification_type = Column(String(50), nullable=False, default="general")
    viewed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Mail(Base):
    __tablename__ = "mail"

    id = Column(String(36), primary_key=True, default=generate_id)
    trainer_id = Column(String(36), ForeignKey("trainers.id", ondelete="CASCADE"), nullable=True, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(255), nullable=True)
    to_email = Column(String(255), nullable=False)
    to_name = Column(String(255), nullable=True)
    reply_to = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=False)
    html = Column(Text, nullable=False)
    sent_time = Column(DateTime, nullable=True)
    skipped = Column(Boolean, default=False, nullable=False)
    provider_message_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClientLoginRequest(Base):
    __tablename__ = "client_login_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    authenticated = Column(Boolean, default=False, nullable=False)
    failed_authentication_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class WorkflowOutbox(Base):
    """Transactional outbox. Rows are written with the state change they belong to."""

    __tablename__ = "workflow_outbox"

    id = Column(String(36), primary_key=True, default=generate_id)
    task_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    dedupe_key = Column(String(255), unique=True, nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=25, nullable=False)
    available_at = Column(DateTime, default=utcnow, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
