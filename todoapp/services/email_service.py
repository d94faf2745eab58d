"""Service for sending verification emails."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..domain.models import PublicUser

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "Todo App",
    ):
        self.smtp_host = smtp_host or ""
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username or ""
        self.smtp_password = smtp_password or ""
        self.from_email = from_email or self.smtp_username
        self.from_name = from_name
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    @staticmethod
    def verification_url(base_url: str, token: str) -> str:
        return f"{base_url.rstrip('/')}/auth/verify-email/{token}"

    def send_verification_email(self, user: PublicUser, verification_token: str, base_url: str) -> bool:
        """
        Send the email verification link.

        Args:
            user: Recipient account
            verification_token: Verification token
            base_url: Base URL for the verification link

        Returns:
            True if sent (or logged when SMTP is not configured), False otherwise
        """
        verification_url = self.verification_url(base_url, verification_token)
        if not self.enabled:
            # Development mode: no SMTP server configured.
            logger.info("Verification URL for %s: %s", user.email, verification_url)
            return True

        subject = "Confirm your email address - Todo App"
        text_body = (
            f"Hello {user.username},\n\n"
            "please confirm your email address to activate your account:\n"
            f"{verification_url}\n\n"
            "This link expires in 24 hours.\n"
            "If you did not create an account you can ignore this email.\n"
        )
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>Hello {user.username},</h2>
                <p>please confirm your email address to activate your account.</p>
                <p><a href="{verification_url}">Confirm email address</a></p>
                <p style="color: #64748b; font-size: 14px;">This link expires in 24 hours.</p>
            </body>
        </html>
        """
        return self._send_email(user.email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            return True

        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to_email, exc)
            return False
