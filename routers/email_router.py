import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from dependencies import get_email_service
from services.email_service import EmailService
from services.email_templates import get_template
from utils.responses import error_response

logger = logging.getLogger(__name__)

email_router = APIRouter(prefix="/api", tags=["email"])


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")
    data: Dict[str, Optional[str]] = Field(default_factory=dict)


@email_router.post("/send-email")
async def send_email(
    body: SendEmailRequest,
    mailer: EmailService = Depends(get_email_service),
):
    """
    Send a catalog template. Unlike internal callers, this endpoint reports
    every failure to the client.
    """
    if not body.to or not body.template_id:
        return error_response("Missing 'to' or 'templateId'", status=400)
    if get_template(body.template_id) is None:
        return error_response("Template not found", status=404)
    if not mailer.configured:
        logger.error("RESEND_API_KEY is not set; cannot send email")
        return error_response("RESEND_API_KEY not configured", status=500)

    logger.info(f"Attempting to send email to {body.to} with template {body.template_id}")
    result = await mailer.send(body.to, body.template_id, body.data)
    if not result.ok:
        return error_response(result.error or "Failed to send email", status=500)
    return {"success": True}
