from typing import Optional, Dict, Any
import asyncio
import logging
from pathlib import Path

import jinja2
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from ..config import Settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class ModernEmailService:
    """SendGrid mailer rendering jinja2 templates from templates/email."""

    def __init__(self, settings: Settings, client: Optional[SendGridAPIClient] = None):
        self.sender_email = settings.sender_email
        self.clinic_name = settings.clinic_name
        self.clinic_address = settings.clinic_address
        self.clinic_phone = settings.clinic_phone
        self.enabled = settings.email_enabled or client is not None

        if not self.enabled:
            logger.warning("SENDGRID_API_KEY not found - email service disabled")

        self.sg = client or (SendGridAPIClient(api_key=settings.sendgrid_api_key) if self.enabled else None)

        self.template_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.template_env.get_template(f"{template_name}.html")
        return template.render(
            clinic_name=self.clinic_name,
            clinic_address=self.clinic_address,
            clinic_phone=self.clinic_phone,
            **context
        )

    async def send_templated_email(
        self,
        to_email: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Render ``template_name`` and send it; never raises."""
        if not self.enabled:
            return {"success": False, "message": "Email service not configured"}
        try:
            html_content = self.render(template_name, context)

            mail = Mail(
                from_email=self.sender_email,
                to_emails=to_email,
                subject=context.get("subject", self.clinic_name),
                html_content=html_content
            )

            response = await asyncio.to_thread(self.sg.send, mail)
            logger.info(f"Email '{template_name}' sent to {to_email} (status {getattr(response, 'status_code', '?')})")
            return {"success": True, "message": "Email sent successfully"}

        except Exception as e:
            logger.error(f"Failed to send '{template_name}' email to {to_email}: {e}")
            return {"success": False, "message": f"Failed to send email: {str(e)}"}
