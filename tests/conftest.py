"""Shared fixtures: a mocked paho engine handle and loguru capture."""

from types import SimpleNamespace
from unittest.mock import patch

import paho.mqtt.client as mqtt
import pytest
from loguru import logger

from mqtt_adapter.engine import EngineLibrary
from mqtt_adapter.transport import MQTTTransport


def make_message(topic: str, payload: bytes) -> SimpleNamespace:
    """Stand-in for paho's MQTTMessage as seen by the message hook."""
    return SimpleNamespace(topic=topic, payload=payload)


@pytest.fixture(autouse=True)
def reset_engine_library():
    yield
    EngineLibrary._refcount = 0


@pytest.fixture
def client_cls():
    """Patch paho's Client class; the instance accepts every request by default."""
    with patch("mqtt_adapter.transport.mqtt.Client") as cls:
        engine = cls.return_value
        engine.protocol = mqtt.MQTTv311
        engine.is_connected.return_value = True
        engine.loop_start.return_value = mqtt.MQTT_ERR_SUCCESS
        engine.loop_stop.return_value = mqtt.MQTT_ERR_SUCCESS
        engine.disconnect.return_value = mqtt.MQTT_ERR_SUCCESS
        engine.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
        engine.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)
        yield cls


@pytest.fixture
def engine(client_cls):
    return client_cls.return_value


@pytest.fixture
def tls_context():
    with patch("mqtt_adapter.transport._build_tls_context") as build:
        build.return_value = object()
        yield build


@pytest.fixture
def transport(engine):
    t = MQTTTransport("device-01", "user", "secret")
    yield t
    t.close()


@pytest.fixture
def log_records():
    records = []
    handler_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
