"""Phone OTP login for storefront."""

from __future__ import annotations

import hmac
import logging
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

import httpx

from .data_store import DataStore
from .errors import InvalidOtpError, OtpRateLimitedError, SmsError
from .models import _generate_id
from .utils import normalize_phone

logger = logging.getLogger(__name__)

OTP_TABLE = "otp_codes"
USERS_TABLE = "users"

OTP_COOLDOWN = timedelta(seconds=60)
OTP_TTL = timedelta(minutes=5)


class SmsProvider(Protocol):
    """Protocol for SMS channels."""

    def send(self, phone: str, message: str) -> None:
        """Send a text message to an E.164 number.

        Raises:
            SmsError: If the provider rejects the message.
        """
        ...


class MessageBotSms:
    """MessageBot HTTP API client."""

    def __init__(
        self,
        api_key: str | None,
        sender_id: str | None,
        url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.sender_id = sender_id
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def send(self, phone: str, message: str) -> None:
        if not self.api_key or not self.sender_id:
            raise SmsError("SMS credentials are not configured")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    self.url,
                    json={
                        "api_key": self.api_key,
                        "sender": self.sender_id,
                        "to": phone,
                        "message": message,
                    },
                )
        except httpx.HTTPError as e:
            raise SmsError(str(e))

        try:
            result = response.json()
        except ValueError:
            result = {}
        if response.status_code >= 400 or result.get("status", "success") != "success":
            raise SmsError(result.get("message") or f"HTTP {response.status_code}")


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_time(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class OtpService:
    """Issues and checks single-use login codes."""

    def __init__(
        self,
        data_store: DataStore,
        sms: SmsProvider,
        clock: Callable[[], datetime] | None = None,
    ):
        self.data_store = data_store
        self.sms = sms
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _latest(self, phone: str) -> dict[str, Any] | None:
        rows = self.data_store.select(
            OTP_TABLE, {"phone": phone}, order_by="created_at", descending=True, limit=1
        )
        return rows[0] if rows else None

    def send(self, phone: str) -> str:
        """
        Send a fresh code to a phone number.

        Returns:
            The normalized phone number.

        Raises:
            ValidationError: If the phone number is invalid.
            OtpRateLimitedError: If a code was sent less than 60s ago.
            SmsError: If the SMS provider fails.
        """
        phone = normalize_phone(phone)
        now = self._clock()

        # Cooldown check, send and insert hold one lock so concurrent sends serialize
        with self.data_store.transaction(OTP_TABLE) as rows:
            sent = [_parse_time(r["created_at"]) for r in rows if r["phone"] == phone]
            if sent:
                elapsed = now - max(sent)
                if elapsed < OTP_COOLDOWN:
                    wait = math.ceil((OTP_COOLDOWN - elapsed).total_seconds())
                    logger.warning(
                        "OTP for %s requested again after %ss", phone, int(elapsed.total_seconds())
                    )
                    raise OtpRateLimitedError(wait)

            code = f"{secrets.randbelow(900000) + 100000}"
            self.sms.send(phone, f"Your verification code is {code}. Valid for 5 mins.")

            # Earlier codes for this phone are superseded; expired ones are dropped
            rows[:] = [
                r for r in rows
                if r["phone"] != phone and _parse_time(r["expires_at"]) > now
            ]
            rows.append(
                {
                    "id": _generate_id(),
                    "phone": phone,
                    "otp_code": code,
                    "created_at": _format_time(now),
                    "expires_at": _format_time(now + OTP_TTL),
                }
            )
        logger.info("OTP sent to %s", phone)
        return phone

    def verify(self, phone: str, code: str) -> dict[str, Any]:
        """
        Check a code and log the user in.

        The code is deleted on success. The user is created on first login.

        Returns:
            The user row.

        Raises:
            ValidationError: If the phone number is invalid.
            InvalidOtpError: If no unexpired code matches.
        """
        phone = normalize_phone(phone)
        now = self._clock()

        record = self._latest(phone)
        if record is None or _parse_time(record["expires_at"]) <= now:
            raise InvalidOtpError()
        if not hmac.compare_digest(record["otp_code"].encode(), (code or "").encode()):
            raise InvalidOtpError()

        self.data_store.delete(OTP_TABLE, [record["id"]])
        return self._find_or_create_user(phone)

    def _find_or_create_user(self, phone: str) -> dict[str, Any]:
        with self.data_store.transaction(USERS_TABLE) as rows:
            for row in rows:
                if row["phone"] == phone:
                    return dict(row)
            user = {
                "id": _generate_id(),
                "phone": phone,
                "created_at": _format_time(self._clock()),
            }
            rows.append(user)
        logger.info("Created user %s for %s", user["id"], phone)
        return user
