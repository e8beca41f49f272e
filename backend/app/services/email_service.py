"""
Outbound email over SMTP.

Sends registration OTP codes and password-reset links. Delivery is best
effort: failures are logged and reported as ``False`` so the calling
operation can finish and surface a degraded-success message.
"""
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.config import get_settings
from app.utils.security import mask_email

logger = logging.getLogger(__name__)


@dataclass
class SMTPConfig:
    """SMTP configuration container"""
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_address: str
    use_tls: bool


class EmailService:
    """Service for transactional email"""

    def __init__(self):
        self.settings = get_settings()

    def _is_email_configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.smtp_from)

    def _get_smtp_config(self) -> Optional[SMTPConfig]:
        """Get SMTP configuration if properly configured"""
        if not self._is_email_configured():
            return None

        return SMTPConfig(
            host=self.settings.smtp_host,
            port=self.settings.smtp_port,
            user=self.settings.smtp_user or None,
            password=self.settings.smtp_password or None,
            from_address=self.settings.smtp_from,
            use_tls=self.settings.smtp_use_tls,
        )

    def _send_email(self, to_address: str, subject: str, html_body: str, config: SMTPConfig) -> None:
        """Send an email using the provided configuration"""
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = config.from_address
        msg['To'] = to_address
        msg['Date'] = datetime.utcnow().strftime('%a, %d %b %Y %H:%M:%S +0000')
        msg.attach(MIMEText(html_body, 'html'))

        with smtplib.SMTP(config.host, config.port, timeout=10) as server:
            if config.use_tls:
                server.starttls()
            if config.user and config.password:
                server.login(config.user, config.password)
            server.send_message(msg)

    def send(self, to_address: str, subject: str, html_body: str) -> bool:
        """
        Send one message.

        Args:
            to_address: Recipient
            subject: Subject line
            html_body: HTML body

        Returns:
            True if the SMTP server accepted the message
        """
        config = self._get_smtp_config()
        if config is None:
            logger.warning(f"SMTP not configured; email '{subject}' to {mask_email(to_address)} not sent")
            return False

        try:
            self._send_email(to_address, subject, html_body, config)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}' to {mask_email(to_address)}: {e}")
            return False

        logger.info(f"Email '{subject}' sent to {mask_email(to_address)}")
        return True

    def send_otp_email(self, to_address: str, name: str, code: str) -> bool:
        minutes = self.settings.otp_expire_minutes
        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <h2>Hi {name},</h2>
            <p>Your verification code is:</p>
            <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{code}</p>
            <p>The code expires in {minutes} minutes. If you did not create an account, ignore this email.</p>
        </body>
        </html>
        """
        return self.send(to_address, "Your verification code", html_body)

    def send_password_reset_email(self, to_address: str, reset_url: str) -> bool:
        minutes = self.settings.recovery_email_token_expire_minutes
        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <h2>Password reset</h2>
            <p>We received a request to reset your password. Use the link below within {minutes} minutes:</p>
            <p><a href="{reset_url}">Reset my password</a></p>
            <p>If you did not request this, you can ignore this email; your password will not change.</p>
        </body>
        </html>
        """
        return self.send(to_address, "Reset your password", html_body)
