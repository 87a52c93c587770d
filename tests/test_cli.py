"""Tests for the command line entry point."""

import threading
import time
from types import SimpleNamespace
from unittest.mock import Mock

import paho.mqtt
import paho.mqtt.client as mqtt
import pytest

from mqtt_adapter.cli import EXIT_INIT_ERROR, EXIT_REJECTED, main

from .conftest import make_message


@pytest.fixture(autouse=True)
def broker_acks_connection(client_cls):
    """The loop thread acknowledges the connection as soon as it starts."""
    engine = client_cls.return_value

    def start_loop():
        transport = client_cls.call_args.kwargs["userdata"]
        engine.on_connect(engine, transport, {}, Mock(is_failure=False), None)
        return mqtt.MQTT_ERR_SUCCESS

    engine.loop_start.side_effect = start_loop


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "client.toml"
    path.write_text(
        '[broker]\nhost = "mqtt.example.com"\nport = 8883\n\n'
        '[credentials]\ndevice_id = "sensor-7"\nusername = "u"\npassword = "p"\n'
    )
    return str(path)


class TestPublish:
    def test_publish(self, client_cls, engine, tls_context, config_file) -> None:
        status = main(
            ["--config", config_file, "publish", "--topic", "sensors/temp", "--message", "21.5"]
        )

        assert status == 0
        assert client_cls.call_args.kwargs["client_id"] == "sensor-7"
        engine.connect_async.assert_called_once_with(
            "mqtt.example.com", 8883, keepalive=60
        )
        engine.publish.assert_called_once_with(
            "sensors/temp", "21.5", qos=1, retain=True
        )
        engine.disconnect.assert_called_once()
        engine.loop_stop.assert_called_once()

    def test_host_and_port_override(
        self, engine, tls_context, config_file
    ) -> None:
        main(
            [
                "--config", config_file,
                "--host", "10.0.0.2",
                "--port", "18883",
                "publish", "--topic", "a/b", "--message", "x",
            ]
        )

        engine.connect_async.assert_called_once_with("10.0.0.2", 18883, keepalive=60)

    def test_rejected_publish(self, engine, tls_context, config_file) -> None:
        engine.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN)

        status = main(
            ["--config", config_file, "publish", "--topic", "a/b", "--message", "x"]
        )

        assert status == EXIT_REJECTED

    def test_engine_init_error(self, client_cls, config_file, monkeypatch) -> None:
        monkeypatch.setattr(paho.mqtt, "__version__", "1.6.1")

        status = main(
            ["--config", config_file, "publish", "--topic", "a/b", "--message", "x"]
        )

        assert status == EXIT_INIT_ERROR
        client_cls.assert_not_called()


class TestConnectionWait:
    def test_publish_times_out_without_ack(self, engine, tls_context, config_file) -> None:
        engine.loop_start.side_effect = None

        status = main(
            [
                "--config", config_file,
                "--connect-timeout", "0.05",
                "publish", "--topic", "a/b", "--message", "x",
            ]
        )

        assert status == EXIT_REJECTED
        engine.publish.assert_not_called()

    def test_subscribe_times_out_without_ack(self, engine, tls_context, config_file) -> None:
        engine.loop_start.side_effect = None

        status = main(
            ["--config", config_file, "--connect-timeout", "0.05", "subscribe", "--topic", "a/b"]
        )

        assert status == EXIT_REJECTED
        engine.subscribe.assert_not_called()


class TestSubscribe:
    def test_subscribe_stops_after_count(
        self, client_cls, engine, tls_context, config_file
    ) -> None:
        def deliver_once_registered(topic, qos):
            transport = client_cls.call_args.kwargs["userdata"]

            def run() -> None:
                while topic not in transport.get_subscription_table():
                    time.sleep(0.01)
                engine.on_message(engine, transport, make_message(topic, b"21.5"))

            threading.Thread(target=run, daemon=True).start()
            return (mqtt.MQTT_ERR_SUCCESS, 1)

        engine.subscribe.side_effect = deliver_once_registered

        status = main(
            ["--config", config_file, "subscribe", "--topic", "sensors/temp", "--count", "1"]
        )

        assert status == 0
        engine.subscribe.assert_called_once_with("sensors/temp", qos=1)

    def test_rejected_subscribe(self, engine, tls_context, config_file) -> None:
        engine.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        status = main(["--config", config_file, "subscribe", "--topic", "a/b"])

        assert status == EXIT_REJECTED
