"""Mock email sender for testing"""

from typing import Any, Dict, List, Optional, Set


class RecordingEmailSender:
    """
    Stand-in for EmailService that stores emails in memory.

    Addresses listed in ``fail_for`` report failure; ``raise_for`` raise.
    """

    def __init__(self, fail_for: Optional[Set[str]] = None, raise_for: Optional[Set[str]] = None):
        self.sent_emails: List[Dict[str, Any]] = []
        self.fail_for = set(fail_for or [])
        self.raise_for = set(raise_for or [])
        self.enabled = True

    async def send_email(self, to_email: str, subject: str, html_body: str, text_body: str = None) -> bool:
        if to_email in self.raise_for:
            raise RuntimeError(f"Mail server rejected {to_email}")
        if to_email in self.fail_for:
            return False
        self.sent_emails.append({
            "to": to_email,
            "subject": subject,
            "body": html_body,
        })
        return True

    def get_latest_email(self, to: str = None) -> Optional[Dict[str, Any]]:
        """Get the latest email sent, optionally filtered by recipient"""
        if to:
            for email in reversed(self.sent_emails):
                if email["to"] == to:
                    return email
            return None
        return self.sent_emails[-1] if self.sent_emails else None

    def clear(self):
        self.sent_emails.clear()
