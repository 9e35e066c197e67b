"""Tests del cliente MQTT (paho sustituido por MagicMock)."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from common.config import get_settings
from derivation_api.core.transport import mqtt_client
from derivation_api.core.transport.mqtt_client import MQTTClient


def _reason(failure=False):
    return MagicMock(is_failure=failure)


def _message(topic="sensors/tank-01/raw", payload=b'{"levelRaw": 1}'):
    return SimpleNamespace(topic=topic, payload=payload)


@pytest.fixture
def paho_client(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(mqtt_client.mqtt, "Client", MagicMock(return_value=client))
    return client


# =============================================================================
# CONEXIÓN
# =============================================================================

class TestConnect:

    def test_connect_async_with_credentials(self, paho_client):
        client = MQTTClient(broker_host="broker", username="user", password="secret")

        client.connect(wait_seconds=0.01)

        paho_client.username_pw_set.assert_called_once_with("user", "secret")
        paho_client.connect_async.assert_called_once_with("broker", 1883, keepalive=60)
        paho_client.loop_start.assert_called_once()
        assert paho_client.on_message == client._on_message

    def test_returns_false_when_broker_silent(self, paho_client):
        client = MQTTClient()

        assert client.connect(wait_seconds=0.01) is False
        assert client.is_connected is False
        paho_client.username_pw_set.assert_not_called()

    def test_returns_true_once_connected(self, paho_client):
        client = MQTTClient()
        paho_client.loop_start.side_effect = lambda: client._on_connect(paho_client, None, {}, _reason())

        assert client.connect(wait_seconds=1.0) is True
        assert client.is_connected is True

    def test_disconnect(self, paho_client):
        client = MQTTClient()
        client.connect(wait_seconds=0.01)

        client.disconnect()

        paho_client.disconnect.assert_called_once()
        paho_client.loop_stop.assert_called_once()
        client.disconnect()
        assert paho_client.disconnect.call_count == 1

    def test_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DERIVATION_ENV_FILE", str(tmp_path / "missing.env"))
        monkeypatch.setenv("MQTT_BROKER_HOST", "mqtt.local")
        monkeypatch.setenv("MQTT_BROKER_PORT", "8883")
        monkeypatch.setenv("MQTT_TOPIC", "plant/+/raw")

        client = MQTTClient.from_settings(get_settings())

        assert client.broker_host == "mqtt.local"
        assert client.broker_port == 8883
        assert client.topic == "plant/+/raw"
        assert client.client_id.startswith("derivation-")


# =============================================================================
# CALLBACKS
# =============================================================================

class TestCallbacks:

    def test_subscribes_on_every_connect(self):
        client = MQTTClient(topic="sensors/+/raw", qos=1)
        paho = MagicMock()

        client._on_connect(paho, None, {}, _reason())
        client._on_disconnect(paho, None, {}, _reason())
        assert client.is_connected is False
        client._on_connect(paho, None, {}, _reason())

        assert paho.subscribe.call_count == 2
        paho.subscribe.assert_called_with("sensors/+/raw", qos=1)
        assert client.is_connected is True
        assert client.stats["reconnects"] == 1

    def test_refused_connection_does_not_subscribe(self):
        client = MQTTClient()
        paho = MagicMock()

        client._on_connect(paho, None, {}, _reason(failure=True))

        paho.subscribe.assert_not_called()
        assert client.is_connected is False

    def test_message_forwarded_to_handler(self):
        client = MQTTClient()
        handler = MagicMock()
        client.set_message_handler(handler)

        client._on_message(None, None, _message())

        handler.assert_called_once_with("sensors/tank-01/raw", b'{"levelRaw": 1}')
        assert client.stats["messages"] == 1
        assert client.stats["last_message_at"] is not None

    def test_handler_error_does_not_propagate(self):
        client = MQTTClient()
        client.set_message_handler(MagicMock(side_effect=RuntimeError("boom")))

        client._on_message(None, None, _message())
        client._on_message(None, None, _message())

        assert client.stats["messages"] == 2
        assert client.stats["handler_errors"] == 2

    def test_message_without_handler_is_counted(self):
        client = MQTTClient()

        client._on_message(None, None, _message())

        assert client.stats["messages"] == 1
        assert client.stats["handler_errors"] == 0
