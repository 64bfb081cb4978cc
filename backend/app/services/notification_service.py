"""Template-based notification service.

Template arguments are user-authored text, so they are HTML-escaped before
being substituted into the HTML body.  The plain-text body uses them as-is.
"""

from __future__ import annotations

import html
import logging
from enum import Enum

from backend.app.services.email_service import EmailService

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CAPSULE_DELIVERY = "CAPSULE_DELIVERY"
    TWO_FACTOR_ENABLED = "TWO_FACTOR_ENABLED"
    TWO_FACTOR_DISABLED = "TWO_FACTOR_DISABLED"


_TEMPLATES: dict[NotificationType, dict[str, str]] = {
    NotificationType.CAPSULE_DELIVERY: {
        "subject": "Time Capsule: {title}",
        "text": (
            "Hello {recipient_name},\n\n"
            "You have received a time capsule from a friend!\n\n"
            "Message: {message}\n\n"
            "{attachments_text}"
            "Enjoy this blast from the past!"
        ),
        "body": (
            "<h2>Hello {recipient_name},</h2>"
            "<p>You have received a time capsule from a friend!</p>"
            '<div style="border: 1px solid #ccc; padding: 20px; margin: 20px 0; border-radius: 5px;">'
            "<h3>{title}</h3>"
            "<p>{message}</p>"
            "{attachments_html}"
            "</div>"
            "<p>Enjoy this blast from the past!</p>"
        ),
    },
    NotificationType.TWO_FACTOR_ENABLED: {
        "subject": "Two-factor authentication enabled",
        "text": (
            "Hello {name},\n\n"
            "Two-factor authentication is now active on your account. "
            "If this was not you, reset your password immediately."
        ),
        "body": (
            "<h2>Two-factor authentication enabled</h2>"
            "<p>Hello {name}, two-factor authentication is now active on your "
            "account. If this was not you, reset your password immediately.</p>"
        ),
    },
    NotificationType.TWO_FACTOR_DISABLED: {
        "subject": "Two-factor authentication disabled",
        "text": (
            "Hello {name},\n\n"
            "Two-factor authentication has been turned off for your account. "
            "If this was not you, reset your password immediately."
        ),
        "body": (
            "<h2>Two-factor authentication disabled</h2>"
            "<p>Hello {name}, two-factor authentication has been turned off for "
            "your account. If this was not you, reset your password immediately.</p>"
        ),
    },
}

# Arguments that are pre-rendered HTML fragments and must not be escaped
_RAW_HTML_ARGS = {"attachments_html"}


def render(notification_type: NotificationType, **kwargs: str) -> tuple[str, str, str]:
    """Return ``(subject, text, html)`` for *notification_type*."""
    template = _TEMPLATES[notification_type]
    escaped = {
        k: v if k in _RAW_HTML_ARGS else html.escape(v, quote=True)
        for k, v in kwargs.items()
    }
    # header values must stay on one line
    subject = " ".join(template["subject"].format(**kwargs).split())
    text = template["text"].format(**kwargs)
    body = template["body"].format(**escaped)
    return subject, text, body


class NotificationService:
    """Send typed notifications using predefined templates."""

    def __init__(self, email: EmailService | None = None) -> None:
        self._email = email or EmailService()

    def send(
        self,
        notification_type: NotificationType,
        recipient_email: str,
        **kwargs: str,
    ) -> bool:
        """Render the template for *notification_type* and send via email."""
        if notification_type not in _TEMPLATES:
            logger.error("Unknown notification type: %s", notification_type)
            return False

        subject, text, body = render(notification_type, **kwargs)
        return self._email.send(
            to=recipient_email, subject=subject, body_html=body, body_text=text
        )
