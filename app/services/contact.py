"""
Contact Service Module

Forwards visitor messages from the website contact form to the owner's inbox
through the Resend email API.
"""

import html
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, EmailDeliveryError
from app.core.logging import get_logger

logger = get_logger(__name__)

EMAIL_TEMPLATE = """
<div style="font-family:sans-serif;max-width:600px;margin:0 auto;padding:20px;">
    <h2 style="color:#4fc3f7;border-bottom:1px solid #eee;padding-bottom:10px;">📬 新的网站留言</h2>
    <div style="background:#f8f9fa;border-radius:8px;padding:16px;margin:16px 0;white-space:pre-wrap;line-height:1.6;">{message}</div>
    <div style="color:#999;font-size:12px;margin-top:20px;">
        <p>时间：{sent_at}（{timezone}）</p>
        <p>UA：{user_agent}</p>
    </div>
</div>
"""


class ContactService:
    """Sends contact form messages as email"""

    def __init__(
        self,
        api_key: Optional[str] = settings.RESEND_API_KEY,
        api_url: str = settings.EMAIL_API_URL,
        sender: str = settings.CONTACT_FROM,
        recipient: str = settings.CONTACT_TO,
        subject: str = settings.CONTACT_SUBJECT,
        timezone: str = settings.CONTACT_TIMEZONE,
        timeout: float = settings.EMAIL_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.recipient = recipient
        self.subject = subject
        self.timezone = timezone
        self.timeout = timeout
        self.transport = transport

    def render_html(self, message: str, user_agent: Optional[str], now: Optional[datetime] = None) -> str:
        """
        Render the notification email body.

        Args:
            message: Visitor message (HTML-escaped here)
            user_agent: Caller user agent, if any
            now: Submission time (defaults to the current time)
        """
        moment = now or datetime.now(ZoneInfo(self.timezone))
        moment = moment.astimezone(ZoneInfo(self.timezone))
        return EMAIL_TEMPLATE.format(
            message=html.escape(message),
            sent_at=moment.strftime("%Y/%m/%d %H:%M:%S"),
            timezone=self.timezone,
            user_agent=html.escape(user_agent or "Unknown"),
        )

    async def send(self, message: str, user_agent: Optional[str] = None):
        """
        Send one contact message.

        Raises:
            ConfigurationError: If no API key is configured
            EmailDeliveryError: If the provider rejects the email
            httpx.HTTPError: If the provider cannot be reached
        """
        if not self.api_key:
            logger.error("RESEND_API_KEY not set")
            raise ConfigurationError("RESEND_API_KEY not set")

        payload = {
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "html": self.render_html(message, user_agent),
        }
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

        if not response.is_success:
            logger.error(f"Resend error: {response.status_code} {response.text[:500]}")
            raise EmailDeliveryError(f"Email provider returned {response.status_code}")

        logger.info(f"Contact message forwarded ({len(message)} chars)")


# Global service instance
_contact_service = None


def get_contact_service() -> ContactService:
    """Get or create contact service instance"""
    global _contact_service
    if _contact_service is None:
        _contact_service = ContactService()
    return _contact_service
