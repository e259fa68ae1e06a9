import asyncio
import json

import pytest

from app.errors import NotConfigured, UnknownIntegrationKind, UpstreamError, ValidationError
from app.models import Integration
from app.services.integration_service import IntegrationProvisioner, parse_props
from app.services.smooch_client import ClientState


@pytest.fixture
def provisioner(registry):
    return IntegrationProvisioner(registry)


class TestParseProps:
    def test_json_string(self):
        assert parse_props('{"token": "abc"}') == {"token": "abc"}

    def test_dict_is_copied(self):
        data = {"token": "abc"}
        props = parse_props(data)
        props["type"] = "telegram"
        assert "type" not in data

    def test_malformed_json(self):
        with pytest.raises(ValidationError):
            parse_props("{not json")

    def test_non_object(self):
        with pytest.raises(ValidationError):
            parse_props("[1, 2]")


class TestSmoochProvisioning:
    def test_creates_local_and_remote(self, db_session, provisioner, smooch_client):
        integration = asyncio.run(
            provisioner.provision(
                db_session, "smooch-telegram", "erxes-1", json.dumps({"token": "bot-token", "displayName": "Shop"})
            )
        )

        assert integration.kind == "telegram"
        assert integration.external_id == "smooch-int-1"
        assert integration.display_name == "Shop"
        assert integration.credentials == {"telegram_bot_token": "bot-token"}
        smooch_client.create_integration.assert_awaited_once_with(
            {"token": "bot-token", "displayName": "Shop", "type": "telegram"}
        )

    def test_remote_failure_removes_local_record(self, db_session, provisioner, smooch_client):
        smooch_client.create_integration.side_effect = UpstreamError("Smooch API 400: invalid token")

        with pytest.raises(UpstreamError):
            asyncio.run(provisioner.provision(db_session, "viber", "erxes-1", '{"token": "bad"}'))

        assert db_session.query(Integration).count() == 0

    def test_missing_credentials(self, db_session, provisioner, smooch_client):
        with pytest.raises(ValidationError):
            asyncio.run(provisioner.provision(db_session, "line", "erxes-1", '{"channelId": "1"}'))

        smooch_client.create_integration.assert_not_called()
        assert db_session.query(Integration).count() == 0

    def test_unknown_kind(self, db_session, provisioner):
        with pytest.raises(UnknownIntegrationKind):
            asyncio.run(provisioner.provision(db_session, "smooch-facebook", "erxes-1", "{}"))

    def test_degraded_client(self, db_session, provisioner, smooch_client):
        smooch_client.ready = False
        smooch_client.state = ClientState.DEGRADED

        with pytest.raises(NotConfigured):
            asyncio.run(provisioner.provision(db_session, "telegram", "erxes-1", '{"token": "x"}'))

        assert db_session.query(Integration).count() == 0

    def test_duplicate_erxes_id(self, db_session, provisioner, telegram_integration, smooch_client):
        with pytest.raises(ValidationError):
            asyncio.run(provisioner.provision(db_session, "telegram", "erxes-1", '{"token": "x"}'))

        smooch_client.create_integration.assert_not_called()

    def test_kind_not_allowed_on_route(self, db_session, provisioner, registry):
        with pytest.raises(ValidationError):
            asyncio.run(
                provisioner.provision(
                    db_session,
                    "whatsapp",
                    "erxes-1",
                    '{"instanceId": "1", "token": "t"}',
                    allowed_kinds=registry.aggregated_kinds(),
                )
            )


class TestWhatsAppProvisioning:
    def test_creates_integration(self, db_session, provisioner, smooch_client):
        integration = asyncio.run(
            provisioner.provision(db_session, "whatsapp", "erxes-wa", {"instanceId": 1001, "token": "wa-token"})
        )

        assert integration.external_id == "1001"
        assert integration.credential("whatsapp_tokens") == {"1001": "wa-token"}
        smooch_client.create_integration.assert_not_called()

    def test_duplicate_instance(self, db_session, provisioner, whatsapp_integration):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(
                provisioner.provision(db_session, "whatsapp", "erxes-other", {"instanceId": "1001", "token": "t"})
            )

        assert "1001" in exc_info.value.message
        assert db_session.query(Integration).count() == 1
