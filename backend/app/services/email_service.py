"""Outgoing mail over SMTP.

Every send is a fresh connection; capsule delivery volume is low and the
worker may sit idle for long stretches between runs.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


def build_message(
    to: str,
    subject: str,
    body_html: str,
    body_text: str | None = None,
    from_addr: str | None = None,
) -> EmailMessage:
    """Plain-text part first (if any), HTML as the preferred alternative."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr or settings.EMAIL_FROM
    msg["To"] = to
    msg.set_content(body_text or "This message requires an HTML capable mail client.")
    msg.add_alternative(body_html, subtype="html")
    return msg


class EmailService:
    """Send transactional emails via SMTP."""

    def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
        from_addr: str | None = None,
    ) -> bool:
        """Returns ``True`` once the server accepted the message."""
        if not settings.NOTIFICATION_ENABLED:
            logger.info("Notifications disabled, not emailing %s", to)
            return False

        msg = build_message(to, subject, body_html, body_text, from_addr)
        try:
            with smtplib.SMTP(
                settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS
            ) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()
                if settings.SMTP_USERNAME:
                    server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Email to %s failed (%s)", to, subject)
            return False

        logger.info("Email sent to %s: %s", to, subject)
        return True
