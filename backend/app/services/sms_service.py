"""
Outbound SMS through an HTTP gateway.

The gateway takes a JSON POST with ``to``, ``from`` and ``body`` and a bearer
API key. When no gateway is configured the message is only logged.
"""
import logging
import re

import requests

from app.config import get_settings

logger = logging.getLogger(__name__)


class SMSService:
    """Service for OTP text messages"""

    def __init__(self):
        self.settings = get_settings()

    def _is_sms_configured(self) -> bool:
        return bool(self.settings.sms_api_url and self.settings.sms_api_key)

    def format_phone_number(self, phone: str) -> str:
        """
        Normalise to E.164.

        Ten-digit local numbers get the default country code; numbers that
        already start with ``+`` keep theirs.
        """
        digits = re.sub(r"\D", "", phone or "")
        if phone and phone.strip().startswith("+"):
            return f"+{digits}"
        if len(digits) == 10:
            return f"{self.settings.sms_default_country_code}{digits}"
        return f"+{digits}"

    def send(self, phone: str, body: str) -> bool:
        """
        Send a text message.

        Returns:
            True if the gateway accepted the message
        """
        to_number = self.format_phone_number(phone)

        if not self._is_sms_configured():
            logger.warning(f"SMS gateway not configured; message to ***{to_number[-4:]} not sent")
            return False

        try:
            response = requests.post(
                self.settings.sms_api_url,
                json={"to": to_number, "from": self.settings.sms_from_number, "body": body},
                headers={"Authorization": f"Bearer {self.settings.sms_api_key}"},
                timeout=10,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send SMS to ***{to_number[-4:]}: {e}")
            return False

        logger.info(f"SMS sent to ***{to_number[-4:]}")
        return True

    def send_otp_sms(self, phone: str, code: str) -> bool:
        minutes = self.settings.otp_expire_minutes
        return self.send(phone, f"Your verification code is {code}. It expires in {minutes} minutes.")
