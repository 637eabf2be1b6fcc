"""
Webhook Service - reconciles Stripe billing events into user entitlements

Per email the subject is either Free (is_paid=False, tier=free) or
Entitled(tier, start, end). Every transition overwrites the affected fields,
so a redelivered event leaves the record exactly as the first delivery did.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import TIER_ADVANCED, TIER_BASIC
from crud.user import UserRepository, normalize_email
from database_models import User
from models.stripe_events import (
    CheckoutCompletedEvent,
    InvoiceEvent,
    StripeEvent,
    Subscription,
    SubscriptionDeletedEvent,
    SubscriptionUpsertEvent,
    parse_event,
)
from services.email_service import EmailService
from services.email_templates import ACCESS_EXPIRED, ACCESS_UPGRADED, PAYMENT_RECEIPT
from services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

# Reconciliation outcomes
ENTITLED = "entitled"
REVOKED = "revoked"
LOGGED = "logged"
SKIPPED = "skipped"
FAILED = "failed"


class InvalidEventPayload(Exception):
    """The verified body is not JSON or does not match its event schema."""


@dataclass(frozen=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: str
    email: Optional[str] = None
    tier: Optional[str] = None
    notification: Optional[str] = None
    error: Optional[str] = None


def tier_for_price(price_id: Optional[str], price_tiers: Dict[str, str]) -> str:
    """
    Map a Stripe price to an access tier.

    Unknown prices fall back to basic so a paying customer is never left locked
    out, but the fallback is logged as a configuration problem.
    """
    if price_id and price_id in price_tiers:
        return price_tiers[price_id]
    logger.warning(
        f"Price '{price_id}' is not mapped to a tier; defaulting to '{TIER_BASIC}'. "
        "Check the STRIPE_PRICE_* settings."
    )
    return TIER_BASIC


def parse_webhook_body(payload: bytes) -> StripeEvent:
    try:
        body = json.loads(payload)
    except ValueError as e:
        raise InvalidEventPayload(f"Invalid JSON payload: {e}") from e
    try:
        return parse_event(body)
    except ValueError as e:
        raise InvalidEventPayload(f"Unexpected event shape: {e}") from e


class WebhookService:
    """
    Applies verified Stripe events to the users table and sends the matching
    notification email after each committed access change.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        mailer: EmailService,
        price_tiers: Dict[str, str],
        dashboard_url: Optional[str] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.mailer = mailer
        self.price_tiers = price_tiers
        self.dashboard_url = dashboard_url
        self.users = UserRepository(db)

    def construct_event(self, payload: bytes, sig_header: str) -> StripeEvent:
        """
        Authenticate and parse a raw webhook body.

        Raises:
            WebhookVerificationError: If the signature does not match
            InvalidEventPayload: If the authenticated body cannot be parsed
        """
        self.gateway.verify_signature(payload, sig_header)
        return parse_webhook_body(payload)

    async def process_event(self, event: StripeEvent) -> ReconcileResult:
        """Dispatch on event type. Store failures are logged, never raised."""
        logger.info(f"Processing Stripe webhook event: {event.type} ({event.id})")
        try:
            if isinstance(event, SubscriptionUpsertEvent):
                return await self._on_subscription_upsert(event)
            if isinstance(event, SubscriptionDeletedEvent):
                return await self._on_subscription_deleted(event)
            if isinstance(event, CheckoutCompletedEvent):
                return await self._on_checkout_completed(event)
            if isinstance(event, InvoiceEvent):
                return await self._on_invoice(event)
        except SQLAlchemyError as e:
            logger.error(f"Store update failed for {event.type} ({event.id}): {e}", exc_info=True)
            await self.db.rollback()
            return ReconcileResult(event.id, event.type, FAILED, error=str(e))

        logger.info(f"Unhandled event type: {event.type}")
        return ReconcileResult(event.id, event.type, LOGGED)

    async def _subscription_email(self, subscription: Subscription) -> Optional[str]:
        email = subscription.metadata.get("user_email")
        if not email and subscription.customer_id:
            email = await self.gateway.get_customer_email(subscription.customer_id)
        return normalize_email(email) if email else None

    async def _on_subscription_upsert(self, event: SubscriptionUpsertEvent) -> ReconcileResult:
        subscription = event.data.object
        email = await self._subscription_email(subscription)
        if not email:
            logger.warning(f"No email resolvable for subscription {subscription.id}; skipping")
            return ReconcileResult(event.id, event.type, SKIPPED)

        tier = tier_for_price(subscription.price_id, self.price_tiers)
        before = await self.users.get_user_by_email(email)
        previous = _access(before)

        await self.users.grant_entitlement(
            email,
            tier,
            subscription_start=subscription.period_start,
            subscription_end=subscription.period_end,
            stripe_customer_id=subscription.customer_id,
        )
        await self.db.commit()
        logger.info(f"User {email} subscription updated: {tier}")

        notification = await self._notify_grant(email, previous, tier)
        return ReconcileResult(event.id, event.type, ENTITLED, email, tier, notification)

    async def _on_subscription_deleted(self, event: SubscriptionDeletedEvent) -> ReconcileResult:
        subscription = event.data.object
        email = await self._subscription_email(subscription)
        if not email:
            logger.warning(f"No email resolvable for subscription {subscription.id}; skipping")
            return ReconcileResult(event.id, event.type, SKIPPED)

        before = await self.users.get_user_by_email(email)
        was_paid = bool(before and before.is_paid)

        user = await self.users.revoke_entitlement(email)
        await self.db.commit()
        if user is None:
            logger.warning(f"Subscription {subscription.id} cancelled for unknown user {email}")
            return ReconcileResult(event.id, event.type, SKIPPED, email)
        logger.info(f"User {email} subscription cancelled")

        notification = None
        if was_paid:
            await self._send(email, ACCESS_EXPIRED)
            notification = ACCESS_EXPIRED
        return ReconcileResult(event.id, event.type, REVOKED, email, user.subscription_tier, notification)

    async def _on_checkout_completed(self, event: CheckoutCompletedEvent) -> ReconcileResult:
        session = event.data.object
        email = session.email

        # Subscription checkouts are settled by the customer.subscription.* events
        if session.mode != "payment" or session.payment_status != "paid" or not email:
            logger.info(
                f"Skipping checkout.session.completed - mode:{session.mode}, "
                f"email:{email}, status:{session.payment_status}"
            )
            return ReconcileResult(event.id, event.type, SKIPPED, email)

        email = normalize_email(email)
        before = await self.users.get_user_by_email(email)
        previous = _access(before)

        # One-time purchases always grant advanced access with no billing period
        await self.users.grant_entitlement(
            email,
            TIER_ADVANCED,
            stripe_customer_id=session.customer_id,
        )
        await self.db.commit()
        logger.info(f"User {email} one-time payment completed")

        notification = await self._notify_grant(email, previous, TIER_ADVANCED)
        return ReconcileResult(event.id, event.type, ENTITLED, email, TIER_ADVANCED, notification)

    async def _on_invoice(self, event: InvoiceEvent) -> ReconcileResult:
        invoice = event.data.object
        email = invoice.customer_email
        if event.type == "invoice.payment_failed" and not email and invoice.customer_id:
            email = await self.gateway.get_customer_email(invoice.customer_id)
        if event.type == "invoice.payment_failed":
            logger.warning(f"Payment failed for {email}, invoice {invoice.id}")
        else:
            logger.info(f"Payment succeeded for invoice {invoice.id}")
        return ReconcileResult(event.id, event.type, LOGGED, email)

    async def _notify_grant(self, email: str, previous: Optional[str], tier: str) -> Optional[str]:
        if previous is None:
            template_id = PAYMENT_RECEIPT
        elif previous != tier:
            template_id = ACCESS_UPGRADED
        else:
            return None
        await self._send(email, template_id)
        return template_id

    async def _send(self, email: str, template_id: str) -> None:
        data = {"dashboard_url": self.dashboard_url} if self.dashboard_url else {}
        result = await self.mailer.send(email, template_id, data)
        if not result.ok:
            logger.info(f"Notification {template_id} for {email} not delivered: {result.error}")


def _access(user: Optional[User]) -> Optional[str]:
    """Paid tier currently held, or None for free / unknown users."""
    if user is None or not user.is_paid:
        return None
    return user.subscription_tier
