from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Table
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base


# Statuses that never count as an active subscription
INACTIVE_STATUSES = ("incomplete", "incomplete_expired", "unpaid")


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)


class User(Base):
    """
    Application user and Stripe billing customer.

    stripe_id is the Stripe customer ID, pm_type / pm_last_four summarise
    the customer's default payment method and trial_ends_at marks a
    generic (card-less) trial.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    stripe_id = Column(String, nullable=True, index=True)
    pm_type = Column(String, nullable=True)
    pm_last_four = Column(String(4), nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    roles = relationship("Role", secondary=user_roles, lazy="selectin")
    subscriptions = relationship(
        "Subscription",
        back_populates="user",
        lazy="selectin",
        order_by="Subscription.id",
        cascade="all, delete-orphan",
    )

    @property
    def role_names(self) -> list:
        return sorted(role.name for role in self.roles)


class Subscription(Base):
    """
    Local mirror of a Stripe subscription.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False, default="default")
    stripe_id = Column(String, unique=True, nullable=False, index=True)
    stripe_status = Column(String, nullable=False)
    stripe_price = Column(String, nullable=True)
    quantity = Column(Integer, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="subscriptions")

    def canceled(self) -> bool:
        return self.ends_at is not None

    def ended(self) -> bool:
        return self.canceled() and not self.on_grace_period()

    def on_grace_period(self) -> bool:
        return self.ends_at is not None and self.ends_at > datetime.utcnow()

    def on_trial(self) -> bool:
        return self.trial_ends_at is not None and self.trial_ends_at > datetime.utcnow()

    def active(self) -> bool:
        return (self.ends_at is None or self.on_grace_period()) and self.stripe_status not in INACTIVE_STATUSES

    def valid(self) -> bool:
        return self.active() or self.on_trial() or self.on_grace_period()

    def has_incomplete_payment(self) -> bool:
        return self.stripe_status in ("past_due", "incomplete")


class ActivityLog(Base):
    """
    Audit trail entry: who did what, with optional properties.
    """
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True)
    causer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(String, nullable=False)
    properties = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
