"""Live shipment tracking through the courier's API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import DEFAULT_GATEWAY_TIMEOUT
from .errors import CourierError

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Tracking API not configured. Please add PROFESSIONAL_COURIER_API_KEY "
    "and PROFESSIONAL_COURIER_API_URL in secrets."
)


@dataclass
class TrackingResult:
    """Courier answer for one tracking number."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    message: str | None = None


class CourierTracker:
    """Professional Courier tracking API client."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None,
        timeout: float = DEFAULT_GATEWAY_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self.base_url)

    def track(self, tracking_no: str) -> TrackingResult:
        """
        Fetch live tracking for a shipment.

        An unconfigured tracker answers with ``success=False`` and a
        message instead of calling out.

        Raises:
            CourierError: If the courier API fails, times out or refuses.
        """
        if not self.configured:
            logger.debug("Courier tracking not configured")
            return TrackingResult(success=False, message=NOT_CONFIGURED_MESSAGE)

        try:
            with httpx.Client(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = client.post("/track", json={"tracking_number": tracking_no})
        except httpx.TimeoutException:
            logger.warning("Courier timed out tracking %s", tracking_no)
            raise CourierError(f"no answer within {self.timeout:g}s")
        except httpx.HTTPError as e:
            logger.warning("Courier request failed for %s: %s", tracking_no, e)
            raise CourierError(str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"events": data}

        if response.status_code >= 400:
            reason = data.get("error") or "Failed to fetch tracking data"
            logger.warning("Courier refused tracking %s: %s", tracking_no, reason)
            raise CourierError(str(reason))

        logger.info("Tracking data fetched for %s", tracking_no)
        return TrackingResult(success=True, data=data)
