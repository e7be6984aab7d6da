"""
Transactional email.

Messages are delivered through SMTP when ``SMTP_HOST`` is configured.
Without it (development, tests) the message is only written to the log
so flows that send verification codes keep working locally.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.helpers import mask_email


logger = logging.getLogger(__name__)


class EmailService:
    """Compose and send account related emails."""

    @classmethod
    async def send_email(cls, to: str, subject: str, html: str) -> bool:
        """Send one message; returns ``False`` when delivery failed.

        Delivery failures are logged and reported to the caller instead
        of aborting the surrounding request.
        """
        if not settings.smtp_host:
            logger.info("Email to %s: %s (SMTP not configured, not sent)", mask_email(to), subject)
            return True
        message = EmailMessage()
        message["From"] = settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
                smtp.starttls()
                if settings.smtp_user:
                    smtp.login(settings.smtp_user, settings.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True

    @classmethod
    async def send_welcome_email(cls, user: Dict[str, Any], verification_token: str) -> bool:
        html = (
            f"<h1>Welcome to {settings.app_name}, {user['first_name']}!</h1>"
            "<p>Thank you for registering. Use the code below to verify your email address:</p>"
            f"<h2>{verification_token}</h2>"
            "<p>This code expires in 24 hours.</p>"
        )
        return await cls.send_email(user["email"], f"Welcome to {settings.app_name} - Verify your email", html)

    @classmethod
    async def send_verification_success_email(cls, user: Dict[str, Any]) -> bool:
        html = (
            f"<h1>Email verified</h1><p>Hi {user['first_name']}, your email address has been verified. "
            f"You now have full access to {settings.app_name}.</p>"
        )
        return await cls.send_email(user["email"], "Email verified successfully", html)

    @classmethod
    async def send_password_reset_email(cls, user: Dict[str, Any], reset_token: str) -> bool:
        reset_url = f"{settings.frontend_url}/reset-password?token={reset_token}"
        html = (
            f"<h1>Password reset</h1><p>Hi {user['first_name']}, you requested a password reset.</p>"
            f'<p><a href="{reset_url}">Reset your password</a></p>'
            "<p>The link expires in 1 hour. If you did not request this, ignore this email.</p>"
        )
        return await cls.send_email(user["email"], "Password reset request", html)

    @classmethod
    async def send_login_notification(cls, user: Dict[str, Any], ip_address: str) -> bool:
        html = (
            f"<h1>New login</h1><p>Hi {user['first_name']}, your account was just accessed "
            f"from {ip_address}.</p><p>If this was not you, reset your password immediately.</p>"
        )
        return await cls.send_email(user["email"], "New login to your account", html)
