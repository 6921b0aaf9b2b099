"""Unit tests for notification transports"""

import json

import httpx
import pytest

from notifications import HttpNotificationSender, LoggingNotificationSender, NotificationRequest
from notifications.sender import send_safely


NOTIFY_URL = "https://notify.example.com/v1/notifications"


def transfer_done() -> NotificationRequest:
    return NotificationRequest(
        user_id="seller-1",
        type="warehouse_transfer",
        title="Transfer completed",
        message="4 units of SKU-1 moved",
        data={"transferId": "t-1"},
    )


class TestHttpNotificationSender:

    def test_posts_camel_case_payload(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            HttpNotificationSender(client, NOTIFY_URL).send(transfer_done())

        assert str(seen[0].url) == NOTIFY_URL
        body = json.loads(seen[0].content)
        assert body["userId"] == "seller-1"
        assert "user_id" not in body
        assert body["type"] == "warehouse_transfer"
        assert body["channels"] == ["email", "in_app"]
        assert body["data"] == {"transferId": "t-1"}

    def test_error_status_raises(self):
        with httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503))) as client:
            with pytest.raises(httpx.HTTPStatusError):
                HttpNotificationSender(client, NOTIFY_URL).send(transfer_done())


class TestSendSafely:

    def test_failures_do_not_propagate(self):
        with httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))) as client:
            assert send_safely(HttpNotificationSender(client, NOTIFY_URL), transfer_done()) is False

    def test_accepted(self):
        assert send_safely(LoggingNotificationSender(), transfer_done()) is True

    def test_no_sender_configured(self):
        assert send_safely(None, transfer_done()) is False
