import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String

from config.settings import TIER_FREE
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    User / entitlement record. The email is the natural key every lookup uses.
    Rows are never deleted; cancelling access resets is_paid and the tier.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)

    is_paid = Column(Boolean, default=False, nullable=False)
    subscription_tier = Column(String, default=TIER_FREE, nullable=False)
    subscription_start = Column(Date, nullable=True)
    subscription_end = Column(Date, nullable=True)
    stripe_customer_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class ETF(Base):
    """
    Fund metrics produced by the upstream batch import. Read-only for the web app.
    Percentages are stored as fractions (0.1234 == 12.34%).
    """
    __tablename__ = "etfs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ticker = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    issuer = Column(String, nullable=True)
    inception_date = Column(Date, nullable=True)
    aum = Column(Float, nullable=True)
    expense_ratio = Column(Float, nullable=True)

    latest_date = Column(Date, nullable=True)
    latest_adj_close = Column(Float, nullable=True)
    price_1y_ago = Column(Float, nullable=True)
    price_ytd_start = Column(Float, nullable=True)
    price_at_inception = Column(Float, nullable=True)

    dividends_last_12mo = Column(Float, nullable=True)
    dividends_ytd = Column(Float, nullable=True)
    dividends_since_inception = Column(Float, nullable=True)

    headline_yield_ttm = Column(Float, nullable=True)
    roc_latest = Column(Float, nullable=True)
    roc_date = Column(Date, nullable=True)
    true_income_yield = Column(Float, nullable=True)
    death_clock_years = Column(Float, nullable=True)
    canary_health = Column(String, nullable=True)

    total_return_1y = Column(Float, nullable=True)
    total_return_ytd = Column(Float, nullable=True)
    total_return_inception = Column(Float, nullable=True)
    spent_dividends_return_1y = Column(Float, nullable=True)
    spent_dividends_return_ytd = Column(Float, nullable=True)
    spent_dividends_return_inception = Column(Float, nullable=True)
    take_home_return_1y = Column(Float, nullable=True)
    take_home_return_ytd = Column(Float, nullable=True)
    take_home_return_inception = Column(Float, nullable=True)
    take_home_cash_return_1y = Column(Float, nullable=True)
    take_home_cash_return_ytd = Column(Float, nullable=True)
    take_home_cash_return_inception = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
