"""
Outbound SMS notifications.

Notifier.send() never raises: delivery problems come back as a
NotificationResult with delivered=False and an error string.

Notifier.dispatch() is what the engine calls: it hands send() to a small
thread pool and returns immediately, so a slow or failing SMS gateway is
never on the reservation's critical path. Outcomes are logged.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx

from ..config import settings
from ..exceptions import NotificationFailure

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")


@dataclass(frozen=True)
class NotificationResult:
    delivered: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    mock: bool = False


class Notifier:
    """Base notifier. Subclasses implement send()."""

    def send(self, destination: str, text: str) -> NotificationResult:
        raise NotImplementedError

    def dispatch(self, destination: Optional[str], text: str) -> str:
        """
        Fire-and-forget send.

        Returns a status for the caller's response:
        "skipped" (no destination), "queued", or "failed" (could not even
        be scheduled).
        """
        if not destination:
            return "skipped"
        try:
            future = _executor.submit(self.send, destination, text)
        except RuntimeError as e:
            # Executor shut down (process exiting)
            logger.warning(f"Notification not dispatched to {destination}: {e}")
            return "failed"
        future.add_done_callback(lambda f: _log_outcome(destination, f))
        return "queued"


class LogNotifier(Notifier):
    """Used when no SMS gateway is configured."""

    def send(self, destination: str, text: str) -> NotificationResult:
        logger.info(f"[SMS MOCK] {destination} {text}")
        return NotificationResult(delivered=False, mock=True)


class TwilioNotifier(Notifier):
    """Twilio Messages REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.transport = transport

    def send(self, destination: str, text: str) -> NotificationResult:
        try:
            message_id = self._post(destination, text)
        except (httpx.HTTPError, NotificationFailure) as e:
            logger.warning(f"Twilio error (non-fatal): {e}")
            return NotificationResult(delivered=False, error=str(e))
        return NotificationResult(delivered=True, message_id=message_id)

    def _post(self, destination: str, text: str) -> str:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            resp = client.post(
                TWILIO_API_URL.format(sid=self.account_sid),
                data={"From": self.from_number, "To": destination, "Body": text},
                auth=(self.account_sid, self.auth_token),
            )

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message", resp.text)
            except ValueError:
                detail = resp.text[:200]
            raise NotificationFailure(f"Twilio {resp.status_code}: {detail}")

        return resp.json().get("sid", "")


@lru_cache
def get_notifier() -> Notifier:
    """Notifier from settings (singleton)."""
    if settings.notifications_enabled and settings.twilio_configured:
        logger.info("Twilio: client initialized")
        return TwilioNotifier(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
        )
    logger.info("Twilio: not configured (using SMS mock)")
    return LogNotifier()


def _log_outcome(destination: str, future: Future) -> None:
    try:
        result = future.result()
    except Exception:
        # send() contract says no raise; a bug in a notifier still must not vanish
        logger.exception(f"Notifier crashed sending to {destination}")
        return

    if result.delivered:
        logger.info(f"SMS delivered to {destination}: {result.message_id}")
    elif not result.mock:
        logger.warning(f"SMS not delivered to {destination}: {result.error}")
