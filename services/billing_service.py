"""
Billing Service - Stripe Checkout session creation
"""

import logging
from typing import Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from crud.user import UserRepository, normalize_email
from services.payment_gateway import PaymentGateway
from services.results import ErrorKind, ServiceResult

logger = logging.getLogger(__name__)


def resolve_price_id(plan_or_price: str, plan_prices: Dict[str, Optional[str]]) -> str:
    """
    Map a symbolic plan name to its configured Stripe price ID.

    Strings that are not plan names are passed through unchanged and treated as
    raw price IDs. A known plan with no configured price resolves to "".
    """
    if plan_or_price in plan_prices:
        resolved = plan_prices[plan_or_price] or ""
    else:
        resolved = plan_or_price
    if resolved and plan_or_price not in plan_prices and not resolved.startswith("price_"):
        logger.warning(f"Checkout plan '{plan_or_price}' is not a known plan; using it as a raw price ID")
    return resolved


class BillingService:
    """
    Service class for checkout-related business logic.
    Works with email addresses directly; the user does not need to be signed in.
    """

    def __init__(self, db: AsyncSession, gateway: PaymentGateway, settings: Settings):
        """
        Args:
            db: AsyncSession instance for database operations
            gateway: Stripe gateway used to create the session
            settings: Application settings (plan -> price table)
        """
        self.db = db
        self.gateway = gateway
        self.settings = settings

    async def create_checkout_session(
        self,
        plan: str,
        email: str,
        success_url: str,
        cancel_url: str,
    ) -> ServiceResult:
        """
        Create a Stripe Checkout session for a plan.

        Ensures an entitlement record exists for the email before redirecting to
        Stripe, so the webhook always has a row to update.

        Returns:
            ServiceResult with data {"sessionId": ..., "url": ...}
        """
        price_id = resolve_price_id(plan, self.settings.plan_prices())
        if not price_id:
            return ServiceResult.failure(
                f"Invalid price ID or plan: {plan}", ErrorKind.VALIDATION, status_code=400
            )

        if not self.gateway.configured:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot create checkout session.")
            return ServiceResult.failure(
                "Payment processor is not configured", ErrorKind.INTERNAL, status_code=500
            )

        email = normalize_email(email)
        one_time = bool(self.settings.price_one_time) and price_id == self.settings.price_one_time

        params = {
            "mode": "payment" if one_time else "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "customer_email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"user_email": email},
        }
        if not one_time:
            params["subscription_data"] = {"metadata": {"user_email": email}}

        try:
            await UserRepository(self.db).ensure_user(email)
            await self.db.commit()

            session = await self.gateway.create_checkout_session(params)
        except stripe.StripeError as e:
            logger.error(f"Stripe rejected checkout session for {email}: {e}")
            return ServiceResult.failure(
                e.user_message or str(e) or "Payment processor error",
                ErrorKind.UPSTREAM,
                status_code=e.http_status or 500,
                code=e.code,
            )
        except Exception as e:
            logger.error(f"Failed to create checkout session: {e}", exc_info=True)
            await self.db.rollback()
            return ServiceResult.failure(
                "An unknown error occurred", ErrorKind.INTERNAL, status_code=500
            )

        logger.info(f"Created {params['mode']} checkout session {session.id} for {email}")
        return ServiceResult.success({"sessionId": session.id, "url": session.url})

    def public_config(self) -> dict:
        """Publishable key and the plans that can currently be bought."""
        return {
            "publishableKey": self.settings.stripe_publishable_key,
            "plans": [name for name, price in self.settings.plan_prices().items() if price],
        }
