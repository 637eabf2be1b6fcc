"""
Transactional email templates.

Placeholders use ``{{key}}`` or ``{{key|fallback}}`` and are filled in at send
time by the email service.
"""

from dataclasses import dataclass
from typing import Dict, Optional

WELCOME_VERIFY = "welcome_verify"
PAYMENT_RECEIPT = "payment_receipt"
ACCESS_UPGRADED = "access_upgraded"
ACCESS_EXPIRED = "access_expired"
PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class EmailTemplate:
    id: str
    title: str
    subject: str
    body: str
    preview_text: Optional[str] = None


TEMPLATES: Dict[str, EmailTemplate] = {
    tpl.id: tpl
    for tpl in (
        EmailTemplate(
            id=WELCOME_VERIFY,
            title="Welcome + Verify Email",
            subject="Welcome to YieldCanary – confirm your email",
            preview_text="Confirm your email to unlock every high-yield ETF insight.",
            body=(
                "Hi {{first_name|there}},\n"
                "You're one click away from seeing every high-yield ETF with no illusions.\n"
                "Confirm your email address here:\n"
                "{{verification_link}}\n"
                "Once confirmed, the full dashboard (including Canary Health colors) will unlock instantly.\n"
                "Talk soon,\n"
                "Ryan Fish\n"
                "Founder, YieldCanary"
            ),
        ),
        EmailTemplate(
            id=PAYMENT_RECEIPT,
            title="Payment Receipt / Unlock notice",
            subject="You're in! YieldCanary Pro is now unlocked!",
            preview_text="Death Clock, True Income Yield, and Take-Home Cash Return are now visible.",
            body=(
                "Hey {{first_name}},\n"
                "Welcome to the real numbers. The blur is gone and you now see:\n"
                "• Death Clock on every ETF\n"
                "• True Income Yield after ROC\n"
                "• Take-Home Cash Return after taxes\n"
                "\n"
                "Your dashboard → {{dashboard_url|https://app.yieldcanary.com}}\n"
                "Let's go find some dead canaries,\n"
                "-YieldCanary HQ"
            ),
        ),
        EmailTemplate(
            id=ACCESS_UPGRADED,
            title="Blur Removed / Access Upgraded",
            subject="Your YieldCanary Pro access just went live!",
            preview_text="Full ETF metrics, including Take-Home Cash Return, are now visible.",
            body=(
                "{{first_name}},\n"
                "Boom, the blur is gone!\n"
                "You now have full access to every metric on our list of income ETFs, "
                "including the Take-Home Cash Return column.\n"
                "Open the dashboard → {{dashboard_url|https://app.yieldcanary.com}}\n"
                "Enjoy the truth,\n"
                "-YieldCanary HQ"
            ),
        ),
        EmailTemplate(
            id=ACCESS_EXPIRED,
            title="Access Expired / Churn notice",
            subject="Your YieldCanary Pro access has expired",
            preview_text="Blurred data is back, but your watchlist is saved if you return.",
            body=(
                "Hey {{first_name}},\n"
                "Your Pro access expired today, so the blur is back on.\n"
                "Want it back? Reactivate anytime here (your watchlist is still saved):\n"
                "{{pricing_url|https://app.yieldcanary.com/pricing}}\n"
                "No pressure, we'll keep your data safe.\n"
                "-YieldCanary HQ"
            ),
        ),
        EmailTemplate(
            id=PASSWORD_RESET,
            title="Password Reset",
            subject="Reset your YieldCanary password",
            preview_text="Use the secure link below to set a new password.",
            body=(
                "Hey {{first_name}},\n"
                "Someone (hopefully you) requested a password reset.\n"
                "Click here to set a new password:\n"
                "{{reset_link}}\n"
                "If you didn't ask for this, just ignore this email.\n"
                "\n"
                "-YieldCanary HQ"
            ),
        ),
    )
}


def get_template(template_id: str) -> Optional[EmailTemplate]:
    return TEMPLATES.get(template_id)
