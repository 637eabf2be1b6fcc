"""
Email Service - templated transactional email through the Resend API
"""

import html
import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from services.email_templates import get_template

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

_PLACEHOLDER_RE = re.compile(r"{{([^}]+)}}")
_NAME_SPLIT_RE = re.compile(r"[._\s-]")

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class EmailResult:
    status: str
    template_id: str
    to: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SENT


def first_name_from_email(email: str) -> Optional[str]:
    """'jane.doe@example.com' -> 'Jane'"""
    if not email:
        return None
    local_part = email.split("@")[0]
    if not local_part:
        return None
    token = _NAME_SPLIT_RE.split(local_part)[0]
    if not token:
        return None
    return token[0].upper() + token[1:]


def replace_placeholders(text: str, data: Optional[Mapping[str, Optional[str]]] = None) -> str:
    """
    Fill ``{{key}}`` / ``{{key|fallback}}`` tokens.

    Empty or missing values use the fallback, or an empty string without one.
    """
    data = data or {}

    def _sub(match: re.Match) -> str:
        parts = match.group(1).split("|")
        value = data.get(parts[0].strip())
        if value:
            return str(value)
        if len(parts) > 1 and parts[1]:
            return parts[1].strip()
        return ""

    return _PLACEHOLDER_RE.sub(_sub, text)


def text_to_html(text: str) -> str:
    paragraphs = (html.escape(line) for line in text.split("\n"))
    return "".join(f"<p>{p}</p>" for p in paragraphs)


class EmailService:
    """
    Sends catalog templates through Resend.

    send() never raises. Every outcome comes back as an EmailResult, which most
    callers ignore: a failed email must never fail the operation that sent it.
    """

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: str,
        template_id: str,
        data: Optional[Mapping[str, Optional[str]]] = None,
    ) -> EmailResult:
        template = get_template(template_id)
        if template is None:
            logger.warning(f"Transactional email template '{template_id}' not found.")
            return EmailResult(SKIPPED, template_id, to, error="template_not_found")

        if not self.configured:
            logger.warning("RESEND_API_KEY missing. Skipping transactional email send.")
            return EmailResult(SKIPPED, template_id, to, error="email_not_configured")

        values = dict(data or {})
        values["first_name"] = values.get("first_name") or first_name_from_email(to)

        subject = replace_placeholders(template.subject, values)
        body = replace_placeholders(template.body, values)

        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "text": body,
            "html": text_to_html(body),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(RESEND_API_URL, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error = f"{e.response.status_code}: {e.response.text}"
            logger.error(f"Failed to send transactional email ({template_id}) to {to}: {error}")
            return EmailResult(FAILED, template_id, to, error=error)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send transactional email ({template_id}) to {to}: {e}")
            return EmailResult(FAILED, template_id, to, error=str(e))

        message_id = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message_id = body.get("id")
        logger.info(f"Transactional email ({template_id}) sent to {to} id={message_id}")
        return EmailResult(SENT, template_id, to, message_id=message_id)
