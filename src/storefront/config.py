"""Runtime configuration for storefront, read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

# Can be overridden via STOREFRONT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_GATEWAY_URL = "https://api.razorpay.com/v1"
DEFAULT_SMS_URL = "https://portal.messagebot.xyz/api/v2/send"
DEFAULT_GATEWAY_TIMEOUT = 10.0


@dataclass
class StorefrontConfig:
    """Process-wide settings. Business settings (tax rates etc.) live in the settings table."""

    data_dir: Path
    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None
    razorpay_api_url: str = DEFAULT_GATEWAY_URL
    gateway_timeout: float = DEFAULT_GATEWAY_TIMEOUT
    sms_api_key: str | None = None
    sms_sender_id: str | None = None
    sms_api_url: str = DEFAULT_SMS_URL
    notify_webhook_url: str | None = None
    courier_api_key: str | None = None
    courier_api_url: str | None = None
    admin_token: str | None = None

    @classmethod
    def from_env(cls) -> "StorefrontConfig":
        env = os.environ
        return cls(
            data_dir=Path(env.get("STOREFRONT_DATA_DIR", _default_data_dir)),
            razorpay_key_id=env.get("RAZORPAY_KEY_ID") or None,
            razorpay_key_secret=env.get("RAZORPAY_KEY_SECRET") or None,
            razorpay_api_url=env.get("RAZORPAY_API_URL", DEFAULT_GATEWAY_URL),
            gateway_timeout=float(env.get("STOREFRONT_GATEWAY_TIMEOUT", DEFAULT_GATEWAY_TIMEOUT)),
            sms_api_key=env.get("MESSAGEBOT_API_KEY") or None,
            sms_sender_id=env.get("MESSAGEBOT_SENDER_ID") or None,
            sms_api_url=env.get("MESSAGEBOT_API_URL", DEFAULT_SMS_URL),
            notify_webhook_url=env.get("STOREFRONT_NOTIFY_WEBHOOK_URL") or None,
            courier_api_key=env.get("PROFESSIONAL_COURIER_API_KEY") or None,
            courier_api_url=env.get("PROFESSIONAL_COURIER_API_URL") or None,
            admin_token=env.get("STOREFRONT_ADMIN_TOKEN") or None,
        )
