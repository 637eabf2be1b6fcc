from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Subscription(BaseModel):
    """The entitlement fields of a user record."""
    model_config = ConfigDict(from_attributes=True)

    email: str
    is_paid: bool = False
    subscription_tier: str = "free"
    subscription_start: Optional[date] = None
    subscription_end: Optional[date] = None
    updated_at: Optional[datetime] = None
