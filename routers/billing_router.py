"""
Billing Router - API endpoints for Stripe checkout and webhooks
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, get_settings
from database import get_db
from dependencies import get_email_service, get_payment_gateway
from services.billing_service import BillingService
from services.email_service import EmailService
from services.payment_gateway import PaymentGateway, WebhookVerificationError
from services.webhook_service import InvalidEventPayload, WebhookService
from utils.responses import error_response, result_error_response

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api", tags=["billing"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: Optional[str] = Field(default=None, alias="priceId")
    email: Optional[str] = None
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    mailer: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
):
    """
    Handle Stripe webhook events with signature verification.

    Unsigned, forged or malformed requests get a 400 and change nothing.
    Once an event is authenticated and parsed the response is always 200, even
    if applying it failed: Stripe retries non-2xx responses, and a failing store
    write is not something a redelivery would fix.
    """
    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing Stripe-Signature header")
        return error_response("Missing stripe-signature header", status=400)

    # Get raw request body (required for signature verification)
    payload = await request.body()

    service = WebhookService(
        db,
        gateway,
        mailer,
        settings.price_tiers(),
        dashboard_url=settings.app_url,
    )

    try:
        event = service.construct_event(payload, stripe_signature)
    except WebhookVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return error_response("Webhook signature verification failed", status=400)
    except InvalidEventPayload as e:
        logger.error(f"Invalid webhook payload: {e}")
        return error_response("Invalid Stripe event", status=400)

    result = await service.process_event(event)
    logger.info(f"Webhook {result.event_type} ({result.event_id}) -> {result.outcome}")
    return {"received": True}


@billing_router.post("/create-checkout-session")
async def create_checkout_session(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    """
    Create a Stripe Checkout session for a plan name or raw price ID.

    Returns:
        {"sessionId": ..., "url": ...}
    """
    if not (body.price_id and body.email and body.success_url and body.cancel_url):
        return error_response("Missing required fields: priceId, email, successUrl, cancelUrl", status=400)

    result = await BillingService(db, gateway, settings).create_checkout_session(
        body.price_id, body.email, body.success_url, body.cancel_url
    )
    if result.is_error:
        return result_error_response(result)
    return JSONResponse(content=result.data)


@billing_router.get("/billing/config")
async def billing_config(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    """Publishable key and purchasable plans for the client-side Stripe SDK."""
    return BillingService(db, gateway, settings).public_config()
