"""
Resend email API scheduler.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import requests

from earnings_alerts.notifiers.base import EmailMessage, EmailScheduler, EmailSchedulingError

logger = logging.getLogger(__name__)


class ResendEmailScheduler(EmailScheduler):
    """Sends and schedules email through the Resend HTTP API."""

    BASE_URL = "https://api.resend.com"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        timeout: float = 15,
    ):
        """
        Initialize Resend scheduler.

        Args:
            api_key: Resend API key
            from_address: Sender, e.g. "Earnings Alerts <alerts@example.com>"
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    def schedule(
        self, message: EmailMessage, send_at: Optional[datetime] = None
    ) -> str:
        """Submit an email, forward-dated when send_at is given."""
        payload = self._create_payload(message, send_at)
        headers = self._headers()
        if message.idempotency_key:
            headers["Idempotency-Key"] = message.idempotency_key

        try:
            response = self._post(f"{self.BASE_URL}/emails", payload, headers)
        except requests.RequestException as e:
            raise EmailSchedulingError(f"Connection error: {e}") from e

        if not response.ok:
            raise EmailSchedulingError(
                f"HTTP {response.status_code}: {response.text}"
            )

        try:
            send_id = response.json().get("id")
        except ValueError as e:
            raise EmailSchedulingError("Malformed response from email provider") from e
        if not send_id:
            raise EmailSchedulingError("Email provider returned no id")
        return send_id

    def cancel(self, send_id: str) -> bool:
        """Ask Resend to cancel a scheduled email."""
        try:
            response = requests.post(
                f"{self.BASE_URL}/emails/{send_id}/cancel",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Cancel of scheduled email {send_id} failed: {e}")
            return False

        if not response.ok:
            logger.warning(
                f"Cancel of scheduled email {send_id} rejected: "
                f"HTTP {response.status_code}"
            )
            return False
        return True

    def _post(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> requests.Response:
        """POST with a single retry on rate limiting."""
        response = requests.post(
            url, json=payload, headers=headers, timeout=self.timeout
        )

        if response.status_code == 429:
            try:
                retry_after = float(response.headers.get("Retry-After", "1"))
            except ValueError:
                logger.warning("Unparseable Retry-After header, not retrying")
                return response
            # Never wait longer than a request may take
            time.sleep(max(0.0, min(retry_after, self.timeout)))
            response = requests.post(
                url, json=payload, headers=headers, timeout=self.timeout
            )

        return response

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _create_payload(
        self, message: EmailMessage, send_at: Optional[datetime]
    ) -> dict[str, Any]:
        """Create Resend request body."""
        payload: dict[str, Any] = {
            "from": self.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if send_at is not None:
            if send_at.tzinfo is None:
                send_at = send_at.replace(tzinfo=timezone.utc)
            payload["scheduled_at"] = send_at.astimezone(timezone.utc).isoformat()
        return payload
