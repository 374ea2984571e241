import json

import httpx
import pytest

from fakes import RecordingMailer
from services.notification_service.mailer import SENDGRID_SEND_URL, SendGridMailer
from services.notification_service.service import DEFAULT_STATUS_MESSAGE, EmailNotifier, status_message
from shared.exceptions import UpstreamUnavailable


class TestSendGridMailer:
    async def test_posts_v3_message(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(202)

        mailer = SendGridMailer("sg-key", "noreply@water.test", transport=httpx.MockTransport(handler))
        await mailer.send("thandi@example.com", "Hello", "plain", "<p>html</p>",
                          attachments=[{"filename": "INV-1.pdf"}])

        request = seen[0]
        assert str(request.url) == SENDGRID_SEND_URL
        assert request.headers["Authorization"] == "Bearer sg-key"
        body = json.loads(request.content)
        assert body["personalizations"] == [{"to": [{"email": "thandi@example.com"}]}]
        assert body["from"] == {"email": "noreply@water.test"}
        assert [c["type"] for c in body["content"]] == ["text/plain", "text/html"]
        assert body["attachments"] == [{"filename": "INV-1.pdf"}]

    async def test_missing_key(self):
        mailer = SendGridMailer("", "noreply@water.test")

        with pytest.raises(UpstreamUnavailable):
            await mailer.send("thandi@example.com", "Hello", "plain", "<p>html</p>")

    async def test_missing_recipient(self):
        mailer = SendGridMailer("sg-key", "noreply@water.test")

        with pytest.raises(UpstreamUnavailable):
            await mailer.send(None, "Hello", "plain", "<p>html</p>")

    async def test_rejected_by_provider(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"errors": []}))
        mailer = SendGridMailer("sg-key", "noreply@water.test", transport=transport)

        with pytest.raises(UpstreamUnavailable):
            await mailer.send("thandi@example.com", "Hello", "plain", "<p>html</p>")


class TestEmailNotifier:
    async def test_assignment_goes_to_distributor(self, session_factory, make_distributor, make_order):
        distributor = await make_distributor(name="Aqua North", email="north@aqua.test")
        order = await make_order(amount=230.0)
        mailer = RecordingMailer()

        await EmailNotifier(mailer, session_factory).notify_assignment(order.id, distributor.id)

        [message] = mailer.messages
        assert message["to"] == "north@aqua.test"
        assert message["subject"] == f"New Order Assigned: #{order.woo_order_id}"
        assert "Hello Aqua North" in message["text"]
        assert "Amount: R 230.00" in message["text"]
        assert order.address_text in message["html"]

    async def test_distributor_without_email(self, session_factory, make_distributor, make_order):
        distributor = await make_distributor(email=None)
        order = await make_order()

        with pytest.raises(UpstreamUnavailable):
            await EmailNotifier(RecordingMailer(), session_factory).notify_assignment(order.id, distributor.id)

    async def test_status_update_goes_to_customer(self, session_factory, make_order):
        order = await make_order(email="thandi@example.com")
        mailer = RecordingMailer()

        await EmailNotifier(mailer, session_factory).notify_status(order.id, "picked_up")

        [message] = mailer.messages
        assert message["to"] == "thandi@example.com"
        assert message["subject"] == f"Order Update: #{order.woo_order_id}"
        assert status_message("picked_up") in message["text"]

    async def test_missing_order(self, session_factory):
        with pytest.raises(UpstreamUnavailable):
            await EmailNotifier(RecordingMailer(), session_factory).notify_status(404, "accepted")

    def test_unknown_status_gets_generic_message(self):
        assert status_message("teleported") == DEFAULT_STATUS_MESSAGE
