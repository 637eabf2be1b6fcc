"""
Shared clients, built once per process from Settings and handed to routes
through FastAPI dependencies. Tests swap them via app.dependency_overrides.
"""
import logging
from functools import lru_cache

from config.settings import get_settings
from services.email_service import EmailService
from services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    settings = get_settings()
    return PaymentGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)


@lru_cache
def get_email_service() -> EmailService:
    settings = get_settings()
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY is not set. Transactional emails will be skipped.")
    return EmailService(settings.resend_api_key, settings.resend_from_email)
