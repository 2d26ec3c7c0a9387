import json
import logging
from typing import Dict, Optional

import requests

from ..config import settings
from ..models import NotificationResult
from ..utils import normalize_whatsapp_number

logger = logging.getLogger(__name__)


class WhatsAppService:
    """Templated WhatsApp messages through the Twilio Messages REST API."""

    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None, content_sid: Optional[str] = None,
                 api_base: Optional[str] = None, use_settings: bool = True):
        if use_settings:
            account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
            auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
            from_number = from_number or settings.TWILIO_WHATSAPP_NUMBER
            content_sid = content_sid or settings.TWILIO_WHATSAPP_CONTENT_SID
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.content_sid = content_sid
        self.api_base = (api_base or settings.TWILIO_API_BASE).rstrip("/")
        self.timeout = 10

    @property
    def enabled(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _messages_url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    def send_message(self, to: str, content_variables: Dict[str, str]) -> NotificationResult:
        """Send the approved template to one number."""
        if not self.enabled:
            logger.warning("Twilio credentials are not fully configured. WhatsApp notifications are disabled.")
            return NotificationResult(success=True, skipped=True)

        if not self.content_sid:
            logger.warning("Twilio WhatsApp Content SID is not configured. Templated notifications are disabled.")
            return NotificationResult(success=True, skipped=True)

        to = normalize_whatsapp_number(to)
        payload = {
            "From": normalize_whatsapp_number(self.from_number),
            "To": to,
            "ContentSid": self.content_sid,
            "ContentVariables": json.dumps(content_variables, ensure_ascii=False),
        }

        try:
            response = requests.post(
                self._messages_url(),
                data=payload,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout
            )
            response.raise_for_status()
            sid = response.json().get("sid")
            logger.info(f"WhatsApp templated message sent to {to}. SID: {sid}")
            return NotificationResult(success=True, delivered=True, sid=sid)
        except Exception as e:
            # reported to the caller; flows that send it decide whether to continue
            logger.error(f"Failed to send WhatsApp message to {to}: {str(e)}")
            return NotificationResult(success=False, error=str(e))
