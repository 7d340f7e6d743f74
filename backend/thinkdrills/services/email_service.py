"""EmailService: transactional email to parents via Resend.

Rules:
  - HTML is built with plain string templates; user-supplied values are escaped.
  - Requires RESEND_API_KEY; without it every send raises EmailDeliveryError.
  - The resend SDK is synchronous, so sends run in asyncio.to_thread and the
    event loop is never blocked.
"""
from __future__ import annotations

import asyncio
import logging
from html import escape

from thinkdrills.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

_BRAND = "ThinkDrills"
_GREEN = "#2d6a4f"
_BG = "#f5f4f0"
_MUTED = "#6b7280"


class EmailService:
    def __init__(self, api_key: str, from_email: str = "onboarding@resend.dev"):
        self._api_key = api_key or ""
        self._from_email = from_email

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self._api_key:
            logger.error("[EmailService] RESEND_API_KEY not configured; cannot send to %s", to)
            raise EmailDeliveryError("Email delivery is not configured")
        try:
            await asyncio.to_thread(self._send_one, to, subject, html)
        except Exception as exc:
            logger.error("[EmailService] Failed to send %r to %s: %s", subject, to, exc)
            raise EmailDeliveryError("Failed to send email") from exc
        logger.info("[EmailService] Sent %r to %s", subject, to)

    async def send_password_reset(
        self, to: str, name: str, reset_url: str, expires_minutes: int = 60
    ) -> None:
        await self.send(
            to,
            f"Reset Your Password - {_BRAND}",
            self._build_reset_html(name, reset_url, expires_minutes),
        )

    def _send_one(self, to_email: str, subject: str, html: str) -> None:
        """Synchronous resend API call; run via asyncio.to_thread."""
        import resend  # imported here so tests that skip email don't need resend installed
        resend.api_key = self._api_key
        resend.Emails.send({
            "from": self._from_email,
            "to": [to_email],
            "subject": subject,
            "html": html,
        })

    @staticmethod
    def _build_reset_html(name: str, reset_url: str, expires_minutes: int) -> str:
        name = escape(name or "there")
        url = escape(reset_url)
        return f"""<!DOCTYPE html>
<html lang="en">
<body style="margin:0;padding:24px;background:{_BG};font-family:Arial,Helvetica,sans-serif;">
  <p>Hello {name},</p>
  <p>You requested to reset your password. Click the link below to reset your password:</p>
  <p><a href="{url}" style="color:{_GREEN};font-weight:700;">Reset Password</a></p>
  <p>This link will expire in {expires_minutes} minutes.</p>
  <p style="color:{_MUTED};">If you didn't request this, please ignore this email.</p>
  <p>Best regards,<br>{_BRAND} Team</p>
</body>
</html>"""
