"""
Base email scheduler classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class EmailSchedulingError(Exception):
    """Raised when the email provider rejects or fails a send."""

    pass


@dataclass
class EmailMessage:
    """Rendered email ready for submission."""

    to: str
    subject: str
    text: str
    html: str
    idempotency_key: Optional[str] = None


class EmailScheduler(ABC):
    """Abstract email delivery service supporting forward-dated sends."""

    @abstractmethod
    def schedule(
        self, message: EmailMessage, send_at: Optional[datetime] = None
    ) -> str:
        """
        Submit a message for delivery.

        Args:
            message: Message to send
            send_at: Future UTC instant to deliver at, or None to send now

        Returns:
            Provider send id

        Raises:
            EmailSchedulingError: If the provider did not accept the message
        """
        pass

    @abstractmethod
    def cancel(self, send_id: str) -> bool:
        """
        Best-effort cancellation of a pending scheduled send.

        Returns:
            True if the provider acknowledged the cancellation
        """
        pass
