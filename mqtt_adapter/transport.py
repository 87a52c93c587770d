from __future__ import annotations

import os
import ssl
import threading
from types import TracebackType
from typing import Mapping, Optional, Type

import paho.mqtt.client as mqtt
from paho.mqtt.client import CallbackAPIVersion, MQTTErrorCode
from loguru import logger

from .engine import EngineLibrary
from .metrics import CommunicationStats
from .subscriptions import MessageCallback, SubscriptionTable

CERTIFICATES_FOLDER = "certificates"
CA_CERTIFICATE_FILE = os.path.join(CERTIFICATES_FOLDER, "ca.crt")
CLIENT_CERTIFICATE_FILE = os.path.join(CERTIFICATES_FOLDER, "client01.crt")
CLIENT_KEY_FILE = os.path.join(CERTIFICATES_FOLDER, "client01.key")
KEEPALIVE_SEC = 60
QOS = 1


def _build_tls_context() -> ssl.SSLContext:
    context = ssl.create_default_context(
        ssl.Purpose.SERVER_AUTH,
        cafile=CA_CERTIFICATE_FILE,
        capath=CERTIFICATES_FOLDER,
    )
    context.load_cert_chain(CLIENT_CERTIFICATE_FILE, CLIENT_KEY_FILE)
    return context


# Engine hooks. They run on the paho network thread; userdata is the owning
# MQTTTransport.
def _on_connect(client, userdata, flags, reason_code, properties) -> None:
    if reason_code.is_failure:
        logger.warning(f"MQTT connect ACK returned reason code: {reason_code}")
    else:
        logger.debug("MQTT connect ACK")
        userdata._connected.set()


def _on_disconnect(client, userdata, flags, reason_code, properties) -> None:
    logger.debug(f"MQTT disconnected: {reason_code}")
    userdata._connected.clear()


def _on_publish(client, userdata, mid, reason_code, properties) -> None:
    logger.debug(f"MQTT publish ACK (mid={mid})")


def _on_subscribe(client, userdata, mid, reason_code_list, properties) -> None:
    logger.debug(f"MQTT subscribe ACK (mid={mid})")
    for reason_code in reason_code_list:
        if reason_code.is_failure:
            logger.warning(f"MQTT subscribe ACK returned reason code: {reason_code}")


def _on_message(client, userdata: "MQTTTransport", message: mqtt.MQTTMessage) -> None:
    userdata._dispatch(message.topic, message.payload)


class MQTTTransport:
    """
    Publish/subscribe client over paho-mqtt.

    Operations only hand requests to the engine and report whether they were
    accepted. Acknowledgements arrive later on the engine's network thread and
    are logged only. Inbound messages are dispatched to the callback
    registered for their exact topic.
    """

    def __init__(self, device_id: str, username: str, password: str) -> None:
        if not device_id:
            raise ValueError("device_id must be a non-empty client identifier")

        self.device_id = device_id
        self.stats = CommunicationStats()
        self._subscriptions = SubscriptionTable()
        self._tls_configured = False
        self._closed = False
        self._connected = threading.Event()

        EngineLibrary.acquire()
        try:
            self.client = mqtt.Client(
                callback_api_version=CallbackAPIVersion.VERSION2,
                client_id=device_id,
                clean_session=False,
                userdata=self,
                protocol=mqtt.MQTTv311,
            )
        except Exception:
            EngineLibrary.release()
            raise

        self.client.on_connect = _on_connect
        self.client.on_disconnect = _on_disconnect
        self.client.on_publish = _on_publish
        self.client.on_subscribe = _on_subscribe
        self.client.on_message = _on_message
        self.client.username_pw_set(username, password)

    def connect(self, host: str, port: int) -> bool:
        if self._setup_options() != mqtt.MQTT_ERR_SUCCESS:
            return False

        logger.info(f"Connecting to {host}:{port}...")
        try:
            self.client.connect_async(host, port, keepalive=KEEPALIVE_SEC)
        except (ValueError, OSError) as e:
            logger.error(f"Error while calling connect_async: {e}")
            return False
        logger.info("Connection requested")

        rc = self.client.loop_start()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Error while calling loop_start: {mqtt.error_string(rc)}")
            return False
        logger.info("MQTT loop is started")

        return True

    def wait_for_connection(self, timeout: Optional[float] = None) -> bool:
        """Block until the broker acknowledged the connection, or the timeout expires."""
        return self._connected.wait(timeout=timeout)

    def disconnect(self) -> bool:
        rc = self.client.disconnect()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Error while calling disconnect: {mqtt.error_string(rc)}")
            return False
        return True

    def send(self, topic: str, message: str) -> bool:
        logger.debug(f"Publishing to MQTT topic [{topic}]: {message}")

        # paho queues QoS>0 publishes while offline and sends them on connect
        if not self.client.is_connected():
            logger.error("Error while calling publish: client is not connected")
            return False

        try:
            info = self.client.publish(topic, message, qos=QOS, retain=True)
        except ValueError as e:
            logger.error(f"Error while calling publish: {e}")
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Error while calling publish: {mqtt.error_string(info.rc)}")
            return False

        self.stats.add_published_bytes(len(message.encode("utf-8")))
        return True

    def subscribe(self, topic: str, callback: Optional[MessageCallback]) -> bool:
        logger.debug(f"Subscribe to topic [{topic}]")

        try:
            rc, _mid = self.client.subscribe(topic, qos=QOS)
        except ValueError as e:
            logger.error(f"Error while calling subscribe: {e}")
            return False
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Error while calling subscribe: {mqtt.error_string(rc)}")
            return False

        self._subscriptions.set(topic, callback)
        return True

    def get_subscription_table(self) -> Mapping[str, Optional[MessageCallback]]:
        return self._subscriptions.snapshot()

    def close(self) -> None:
        """Disconnect, stop the engine loop and release the engine library."""
        if self._closed:
            return
        self._closed = True
        try:
            # Result ignored on teardown; a never-connected client reports NO_CONN
            rc = self.client.disconnect()
            if rc != mqtt.MQTT_ERR_SUCCESS:
                logger.debug(f"Disconnect on close: {mqtt.error_string(rc)}")
        finally:
            self.client.loop_stop()
            EngineLibrary.release()

    def __enter__(self) -> "MQTTTransport":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def _dispatch(self, topic: str, raw_payload: bytes) -> None:
        self.stats.add_received_bytes(len(raw_payload))
        payload = raw_payload.decode("utf-8", errors="replace")
        logger.debug(f"Received new message for topic ['{topic}']:\n{payload}")

        # Exact match only; the lock is not held while the callback runs
        callback = self._subscriptions.get(topic)
        if callback is None:
            logger.debug(f"No handler for topic '{topic}', message dropped")
            self.stats.add_dropped()
            return
        callback(topic, payload)

    def _setup_options(self) -> MQTTErrorCode:
        if not os.path.isfile(CA_CERTIFICATE_FILE):
            logger.warning("Could not find certificate file! The MQTT loop may fail")

        if not self._tls_configured:
            logger.debug(f"MQTT using certificate: {CA_CERTIFICATE_FILE}")
            try:
                self.client.tls_set_context(_build_tls_context())
            except (OSError, ValueError) as e:
                logger.error(f"Error while configuring TLS: {e}")
                return mqtt.MQTT_ERR_TLS
            self._tls_configured = True

        if self.client.protocol != mqtt.MQTTv311:
            logger.error(
                f"Error while pinning protocol version: engine uses {self.client.protocol}"
            )
            return mqtt.MQTT_ERR_PROTOCOL

        return mqtt.MQTT_ERR_SUCCESS


__all__ = ["MQTTTransport"]
