import logging
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Settings:
    # API basics
    API_TITLE = "Citizen Services Portal API"
    API_VERSION = "1.0.0"
    DESCRIPTION = "Task, camp and wallet services for customers, field agents, government liaisons and admins"

    # Document database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./seva_portal.db")

    # Commission split of (total paid - government fee); not required to sum to 1
    AGENT_COMMISSION_RATE = _get_float("AGENT_COMMISSION_RATE", 0.8)
    ADMIN_COMMISSION_RATE = _get_float("ADMIN_COMMISSION_RATE", 0.2)

    # Uploads
    MAX_UPLOAD_SIZE = 1 * 1024 * 1024
    ALLOWED_UPLOAD_TYPES = ["image/png", "image/jpeg", "image/jpg", "application/pdf"]
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

    # Redirect targets
    LANDING_ROUTE = "/"
    DEFAULT_ROUTE = "/dashboard"

    # Authentication provider (Identity Toolkit REST API)
    AUTH_BASE_URL = os.getenv("AUTH_BASE_URL", "https://identitytoolkit.googleapis.com/v1")
    AUTH_API_KEY = os.getenv("AUTH_API_KEY")
    # OAuth access token of a service account; lets sign-out revoke by user id
    AUTH_ADMIN_ACCESS_TOKEN = os.getenv("AUTH_ADMIN_ACCESS_TOKEN")

    # AI prompt service (OpenAI compatible)
    AI_BASE_URL = os.getenv("AI_BASE_URL")
    AI_API_KEY = os.getenv("AI_API_KEY")
    AI_MODEL_NAME = os.getenv("AI_MODEL_NAME", "gpt-4o-mini")

    # WhatsApp (Twilio)
    TWILIO_API_BASE = os.getenv("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01")
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")
    TWILIO_WHATSAPP_CONTENT_SID = os.getenv("TWILIO_WHATSAPP_CONTENT_SID")
    # prefixed to bare 10-digit mobile numbers
    WHATSAPP_DEFAULT_COUNTRY_CODE = os.getenv("WHATSAPP_DEFAULT_COUNTRY_CODE", "91")

    # Feature-toggling site key; absent means captcha is off
    RECAPTCHA_SITE_KEY = os.getenv("RECAPTCHA_SITE_KEY")

    @property
    def ai_enabled(self) -> bool:
        return bool(self.AI_API_KEY)

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_WHATSAPP_NUMBER)

    @property
    def whatsapp_templates_enabled(self) -> bool:
        return self.whatsapp_enabled and bool(self.TWILIO_WHATSAPP_CONTENT_SID)

    @property
    def captcha_enabled(self) -> bool:
        return bool(self.RECAPTCHA_SITE_KEY)

    def check_commission_rates(self):
        """Warn when the configured split hands out more than the profit."""
        total = self.AGENT_COMMISSION_RATE + self.ADMIN_COMMISSION_RATE
        if total > 1:
            logger.warning(
                f"Commission rates sum to {total:.2f} (> 1): agent={self.AGENT_COMMISSION_RATE}, "
                f"admin={self.ADMIN_COMMISSION_RATE}"
            )
        return total

    def public_config(self) -> dict:
        return {
            "captcha_enabled": self.captcha_enabled,
            "captcha_site_key": self.RECAPTCHA_SITE_KEY,
            "whatsapp_enabled": self.whatsapp_enabled,
            "ai_enabled": self.ai_enabled,
            "max_upload_size": self.MAX_UPLOAD_SIZE,
        }


# Shared settings instance
settings = Settings()
