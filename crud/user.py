"""
UserRepository for database operations on the User (entitlement) model
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import PAID_TIERS, TIER_FREE
from database_models import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """
    Entitlement records keyed by email. Accounts created by sign-up and
    records created by checkout live in the same table.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        # ON CONFLICT support lives in the dialect-specific insert constructs
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert(User)
        return sqlite.insert(User)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Lookup by normalized email. Always reloads from the store."""
        result = await self.db.execute(
            select(User)
            .where(User.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def ensure_user(self, email: str) -> User:
        """
        Return the record for an email, creating a free one if it does not exist.

        Uses INSERT ... ON CONFLICT DO NOTHING on the unique email column, so two
        concurrent first-time checkouts for the same address produce one row.
        """
        email = normalize_email(email)
        stmt = self._insert().values(
            email=email,
            name=email.split("@")[0],
            is_paid=False,
            subscription_tier=TIER_FREE,
        ).on_conflict_do_nothing(index_elements=["email"])
        await self.db.execute(stmt)
        await self.db.flush()
        return await self.get_user_by_email(email)

    async def create_user(self, user_data: dict) -> User:
        """
        Insert a free-tier account.

        Args:
            user_data: "email" plus optional "name", "hashed_password" and "is_active"
        """
        email = normalize_email(user_data["email"])
        user = User(
            email=email,
            name=user_data.get("name") or email.split("@")[0],
            hashed_password=user_data.get("hashed_password"),
            is_active=user_data.get("is_active", True),
            is_paid=False,
            subscription_tier=TIER_FREE,
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """Set account fields such as hashed_password or email_verified."""
        for field, value in updates.items():
            if hasattr(user, field):
                setattr(user, field, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def grant_entitlement(
        self,
        email: str,
        tier: str,
        subscription_start: Optional[date] = None,
        subscription_end: Optional[date] = None,
        stripe_customer_id: Optional[str] = None,
    ) -> User:
        """
        Upsert a paid entitlement for an email.

        Every entitlement field is overwritten, never incremented, so applying
        the same grant twice leaves the same record behind.

        Raises:
            ValueError: If the tier is not a paid tier
        """
        if tier not in PAID_TIERS:
            raise ValueError(f"Cannot grant paid access with tier '{tier}'")

        email = normalize_email(email)
        now = datetime.now(timezone.utc)
        values = {
            "is_paid": True,
            "subscription_tier": tier,
            "subscription_start": subscription_start,
            "subscription_end": subscription_end,
            "updated_at": now,
        }
        if stripe_customer_id:
            values["stripe_customer_id"] = stripe_customer_id

        stmt = self._insert().values(
            email=email,
            name=email.split("@")[0],
            created_at=now,
            **values,
        ).on_conflict_do_update(index_elements=["email"], set_=values)
        await self.db.execute(stmt)
        await self.db.flush()
        return await self.get_user_by_email(email)

    async def revoke_entitlement(self, email: str) -> Optional[User]:
        """
        Reset an email to the free tier and clear its billing period.
        Returns None if no record exists.
        """
        email = normalize_email(email)
        result = await self.db.execute(
            update(User)
            .where(User.email == email)
            .values(
                is_paid=False,
                subscription_tier=TIER_FREE,
                subscription_start=None,
                subscription_end=None,
                updated_at=datetime.now(timezone.utc),
            )
        )
        await self.db.flush()
        if not result.rowcount:
            return None
        return await self.get_user_by_email(email)
