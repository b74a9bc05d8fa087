"""Resend email service for outbound email delivery."""

from typing import Optional

import httpx
import structlog

from src.config import settings

logger = structlog.get_logger()


class EmailService:
    """Email sender using the Resend API.

    Never raises: every failure is logged and reported as False so callers
    can treat email as best-effort.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: str = "https://api.resend.com"):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.base_url = base_url

    @property
    def enabled(self) -> bool:
        """Check if Resend is configured."""
        return bool(self.api_key)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        """
        Send an email via Resend.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.warning(
                "email_skipped",
                reason="resend_not_configured",
                to_email=to_email,
            )
            return False

        payload = {
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/emails",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                    timeout=10.0,
                )
        except httpx.TimeoutException:
            logger.error("email_timeout", to_email=to_email)
            return False
        except httpx.HTTPError as e:
            logger.error("email_error", error=str(e), to_email=to_email)
            return False

        if response.is_success:
            logger.info(
                "email_sent",
                to_email=to_email,
                subject=subject,
                message_id=response.json().get("id"),
            )
            return True

        logger.error(
            "email_failed",
            status_code=response.status_code,
            error=response.text,
            to_email=to_email,
        )
        return False


# Singleton instance
email_service = EmailService()
