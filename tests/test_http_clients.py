import asyncio
import json

import httpx
import pytest

from app.config import Settings
from app.errors import NotConfigured, UpstreamError
from app.models import Customer, Integration, Message
from app.services.inbox_client import InboxClient
from app.services.smooch_client import ClientState, SmoochClient
from app.services.whatsapp_client import WhatsAppClient


def _settings(**overrides):
    values = {
        "smooch_app_key_id": "key-id",
        "smooch_app_key_secret": "key-secret",
        "smooch_app_id": "app-1",
    }
    values.update(overrides)
    return Settings(**values)


def _smooch(handler, **overrides):
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://api.smooch.io",
        auth=("key-id", "key-secret"),
    )
    return SmoochClient(_settings(**overrides), http_client=http_client)


class TestSmoochClientLifecycle:
    def test_starts_uninitialized(self):
        client = SmoochClient(_settings())
        assert client.state == ClientState.UNINITIALIZED
        assert not client.ready

    def test_ready_with_full_config(self):
        client = _smooch(lambda request: httpx.Response(200, json={}))
        assert asyncio.run(client.initialize()) == ClientState.READY
        assert client.ready
        assert client.app_id == "app-1"

    def test_degraded_without_config(self):
        client = SmoochClient(_settings(smooch_app_key_secret=None))
        assert asyncio.run(client.initialize()) == ClientState.DEGRADED

    def test_calls_fail_fast_when_degraded(self):
        client = SmoochClient(_settings(smooch_app_id=None))

        async def scenario():
            await client.initialize()
            await client.send_message("u1", {"text": "hi"})

        with pytest.raises(NotConfigured) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.status_code == 503

    def test_calls_fail_before_initialize(self):
        client = SmoochClient(_settings())
        with pytest.raises(NotConfigured):
            asyncio.run(client.create_integration({"type": "telegram"}))


class TestSmoochClientRequests:
    def test_send_message(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(201, json={"message": {"_id": "msg-1"}})

        client = _smooch(handler)

        async def scenario():
            await client.initialize()
            return await client.send_message("u1", {"text": "hi", "role": "appMaker", "type": "text"})

        data = asyncio.run(scenario())

        assert data == {"message": {"_id": "msg-1"}}
        assert seen["method"] == "POST"
        assert seen["path"] == "/v1.1/apps/app-1/appusers/u1/messages"
        assert seen["body"]["role"] == "appMaker"
        assert seen["auth"].startswith("Basic ")

    def test_create_integration_path(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(201, json={"integration": {"_id": "int-1"}})

        client = _smooch(handler)

        async def scenario():
            await client.initialize()
            return await client.create_integration({"type": "viber", "token": "x"})

        assert asyncio.run(scenario())["integration"]["_id"] == "int-1"
        assert paths == ["/v1.1/apps/app-1/integrations"]

    def test_error_status_is_upstream_error(self):
        client = _smooch(lambda request: httpx.Response(401, json={"error": {"code": "unauthorized"}}))

        async def scenario():
            await client.initialize()
            await client.send_message("u1", {"text": "hi"})

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(scenario())
        assert "401" in exc_info.value.message
        assert exc_info.value.status_code == 502

    def test_transport_error_is_upstream_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _smooch(handler)

        async def scenario():
            await client.initialize()
            await client.send_message("u1", {"text": "hi"})

        with pytest.raises(UpstreamError):
            asyncio.run(scenario())


def _whatsapp(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhatsAppClient("https://wa.example/", http_client=http_client)


class TestWhatsAppClient:
    def test_send_message(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"sent": True, "id": "wa-1", "message": "ok"})

        data = asyncio.run(_whatsapp(handler).send_message("15550001@c.us", "hi", "1001", "tok"))

        assert data["id"] == "wa-1"
        assert seen["url"] == "https://wa.example/instance1001/sendMessage?token=tok"
        assert seen["body"] == {"chatId": "15550001@c.us", "body": "hi"}

    def test_send_file(self):
        bodies = []

        def handler(request):
            bodies.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"sent": True, "id": "wa-2"})

        asyncio.run(
            _whatsapp(handler).send_file("15550001@c.us", "https://cdn/a.pdf", "a.pdf", "doc", "1001", "tok")
        )

        path, body = bodies[0]
        assert path == "/instance1001/sendFile"
        assert body == {"chatId": "15550001@c.us", "body": "https://cdn/a.pdf", "filename": "a.pdf", "caption": "doc"}

    def test_not_sent_is_upstream_error(self):
        handler = lambda request: httpx.Response(200, json={"sent": False, "message": "Instance not authorized"})

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(_whatsapp(handler).send_message("15550001@c.us", "hi", "1001", "tok"))
        assert "Instance not authorized" in exc_info.value.message

    def test_error_status_is_upstream_error(self):
        handler = lambda request: httpx.Response(500, text="boom")

        with pytest.raises(UpstreamError):
            asyncio.run(_whatsapp(handler).send_message("15550001@c.us", "hi", "1001", "tok"))


def _inbox(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return InboxClient("https://inbox.example/", http_client=http_client)


def _customer():
    return Customer(given_name="Ann", surname="Lee", phone="+15550001")


class TestInboxClient:
    def test_create_customer(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"_id": "inbox-cus-1"})

        integration = Integration(erxes_api_id="erxes-1")
        inbox_id = asyncio.run(_inbox(handler).create_customer(integration, _customer()))

        assert inbox_id == "inbox-cus-1"
        assert seen["url"] == "https://inbox.example/integrations-api"
        assert seen["body"]["action"] == "create-customer"
        payload = json.loads(seen["body"]["payload"])
        assert payload["integrationId"] == "erxes-1"
        assert payload["firstName"] == "Ann"
        assert payload["phones"] == ["+15550001"]

    def test_message_payload(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"_id": "inbox-msg-1"})

        message = Message(content="pic", attachment={"type": "image/png", "url": "https://cdn/p.png"})
        asyncio.run(_inbox(handler).create_message("inbox-conv-1", "inbox-cus-1", message))

        assert bodies[0]["action"] == "create-conversation-message"
        payload = json.loads(bodies[0]["payload"])
        assert payload["conversationId"] == "inbox-conv-1"
        assert payload["attachments"] == [{"type": "image/png", "url": "https://cdn/p.png"}]

    def test_missing_id_is_upstream_error(self):
        handler = lambda request: httpx.Response(200, json={"status": "ok"})

        with pytest.raises(UpstreamError):
            asyncio.run(_inbox(handler).create_customer(Integration(erxes_api_id="erxes-1"), _customer()))

    def test_error_status_is_upstream_error(self):
        handler = lambda request: httpx.Response(503, text="maintenance")

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(_inbox(handler).create_customer(Integration(erxes_api_id="erxes-1"), _customer()))
        assert "503" in exc_info.value.message

    def test_disabled_without_url(self):
        client = InboxClient(None)

        assert not client.enabled
        assert asyncio.run(client.create_customer(Integration(erxes_api_id="erxes-1"), _customer())) is None
