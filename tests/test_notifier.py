"""
Notifier tests: Twilio over a mocked transport, the log mock, dispatch.
"""

import time
from unittest.mock import patch

import httpx

from virtual_line.services.notifier import (
    LogNotifier,
    NotificationResult,
    Notifier,
    TwilioNotifier,
    get_notifier,
)


def _twilio(handler):
    return TwilioNotifier("AC123", "secret", "+15630000000", transport=httpx.MockTransport(handler))


def test_twilio_send_success():
    """Posts form data to the account's Messages endpoint."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(201, json={"sid": "SM42"})

    result = _twilio(handler).send("+15635550142", "Queue code: 1234")

    assert result == NotificationResult(delivered=True, message_id="SM42")
    assert seen["url"].endswith("/Accounts/AC123/Messages.json")
    assert "To=%2B15635550142" in seen["body"]


def test_twilio_http_error_is_reported_not_raised():
    def handler(request):
        return httpx.Response(400, json={"message": "invalid To number"})

    result = _twilio(handler).send("+15635550142", "hi")

    assert result.delivered is False
    assert "invalid To number" in result.error


def test_twilio_network_error_is_reported_not_raised():
    def handler(request):
        raise httpx.ConnectError("no route")

    result = _twilio(handler).send("+15635550142", "hi")

    assert result.delivered is False
    assert "no route" in result.error


def test_log_notifier_is_mock():
    result = LogNotifier().send("+15635550142", "hi")

    assert result.delivered is False
    assert result.mock is True


def test_dispatch_runs_in_background():
    class Collecting(Notifier):
        def __init__(self):
            self.sent = []

        def send(self, destination, text):
            self.sent.append(destination)
            return NotificationResult(delivered=True)

    notifier = Collecting()

    assert notifier.dispatch(None, "hi") == "skipped"
    assert notifier.dispatch("+15635550142", "hi") == "queued"

    deadline = time.monotonic() + 5
    while not notifier.sent and time.monotonic() < deadline:
        time.sleep(0.01)
    assert notifier.sent == ["+15635550142"]


def test_get_notifier_without_credentials_uses_mock():
    get_notifier.cache_clear()
    try:
        with patch("virtual_line.services.notifier.settings") as mock_settings:
            mock_settings.notifications_enabled = True
            mock_settings.twilio_configured = False
            assert isinstance(get_notifier(), LogNotifier)
    finally:
        get_notifier.cache_clear()
