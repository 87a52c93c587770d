import time

from loguru import logger

from mqtt_adapter import MQTTTransport
from mqtt_adapter.config import load_config

if __name__ == "__main__":
    cfg = load_config("conf/client.toml")

    def on_temperature(topic: str, payload: str) -> None:
        logger.info(f"{topic}: {payload}")

    try:
        with MQTTTransport(
            cfg.credentials.device_id,
            cfg.credentials.username,
            cfg.credentials.password,
        ) as client:
            if not client.connect(cfg.broker.host, cfg.broker.port):
                raise SystemExit("connect request rejected")
            if not client.wait_for_connection(timeout=10.0):
                raise SystemExit("broker did not acknowledge the connection")
            client.subscribe("sensors/temp", on_temperature)
            client.send("sensors/temp", "21.5")
            time.sleep(2.0)
    except Exception:
        logger.exception("Error occurred during example run")
        raise
