"""
Payment Gateway - thin wrapper over the Stripe SDK

Holds its own credentials and passes them per call instead of mutating the
module-level stripe.api_key, so several gateways (and test fakes) can coexist.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class WebhookVerificationError(Exception):
    """Raised when a webhook body cannot be authenticated."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str]


class PaymentGateway:
    """Stripe calls used by checkout and webhook reconciliation."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        if not secret_key:
            logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def create_checkout_session(self, params: Dict[str, Any]) -> CheckoutSession:
        """
        Create a Stripe Checkout session.

        Raises:
            stripe.StripeError: On any error reported by Stripe
        """
        session = await run_in_threadpool(
            stripe.checkout.Session.create, api_key=self.secret_key, **params
        )
        return CheckoutSession(id=session.id, url=getattr(session, "url", None))

    async def get_customer_email(self, customer_id: str) -> Optional[str]:
        """Look up a customer's email. Lookup failures are logged and return None."""
        try:
            customer = await run_in_threadpool(
                stripe.Customer.retrieve, customer_id, api_key=self.secret_key
            )
            return getattr(customer, "email", None)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve Stripe customer {customer_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error looking up Stripe customer {customer_id}: {e}", exc_info=True)
        return None

    def verify_signature(self, payload: bytes, sig_header: str) -> None:
        """
        Check the stripe-signature header against the raw request body.

        Raises:
            WebhookVerificationError: If the secret is missing, the body is not
                UTF-8, or the HMAC does not match within the timestamp tolerance
        """
        if not self.webhook_secret:
            raise WebhookVerificationError("Webhook secret not configured")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                sig_header,
                self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except UnicodeDecodeError as e:
            raise WebhookVerificationError("Webhook body is not valid UTF-8") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(str(e)) from e
