import argparse
import sys
import threading
from typing import List, Optional

from loguru import logger

from .config import Config, load_config
from .engine import EngineInitError
from .transport import MQTTTransport

EXIT_INIT_ERROR = 1
EXIT_REJECTED = 2


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        lambda msg: print(msg, end=""),
        level=level,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level}</level> | "
        "<cyan>{function}</cyan>:"
        "<cyan>{line}</cyan> - <level>{message}</level>",
    )


def _resolve_config(args: argparse.Namespace) -> Config:
    cfg = load_config(args.config) if args.config else Config()
    if args.host is not None:
        cfg.broker.host = args.host
    if args.port is not None:
        cfg.broker.port = args.port
    return cfg


def _log_stats(transport: MQTTTransport) -> None:
    snapshot = transport.stats.snapshot()
    logger.info(
        f"Run stats: pub={snapshot['published_bytes']} B, "
        f"recv={snapshot['received_bytes']} B, "
        f"dropped={snapshot['dropped_messages']}"
    )


def _connect(transport: MQTTTransport, cfg: Config, args: argparse.Namespace) -> bool:
    if not transport.connect(cfg.broker.host, cfg.broker.port):
        return False
    if not transport.wait_for_connection(timeout=args.connect_timeout):
        logger.error(
            f"No connection to {cfg.broker.host}:{cfg.broker.port} "
            f"after {args.connect_timeout}s"
        )
        return False
    return True


def _publish(transport: MQTTTransport, cfg: Config, args: argparse.Namespace) -> int:
    if not _connect(transport, cfg, args):
        return EXIT_REJECTED
    if not transport.send(args.topic, args.message):
        return EXIT_REJECTED
    return 0


def _subscribe(transport: MQTTTransport, cfg: Config, args: argparse.Namespace) -> int:
    done = threading.Event()
    received = 0

    def on_message(topic: str, payload: str) -> None:
        nonlocal received
        received += 1
        logger.info(f"[{topic}] {payload}")
        if args.count is not None and received >= args.count:
            done.set()

    if not _connect(transport, cfg, args):
        return EXIT_REJECTED
    if not transport.subscribe(args.topic, on_message):
        return EXIT_REJECTED

    try:
        done.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mqtt-adapter", description="MQTT publish/subscribe client"
    )
    parser.add_argument("--config", help="Path to TOML config file")
    parser.add_argument("--host", help="Override broker host")
    parser.add_argument("--port", type=int, help="Override broker port")
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for the broker to acknowledge the connection",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    pub = sub.add_parser("publish", help="Publish one retained message")
    pub.add_argument("--topic", required=True)
    pub.add_argument("--message", required=True)

    rcv = sub.add_parser("subscribe", help="Print messages received on a topic")
    rcv.add_argument("--topic", required=True)
    rcv.add_argument(
        "--count", type=int, default=None, help="Stop after N messages"
    )

    args = parser.parse_args(argv)
    cfg = _resolve_config(args)
    setup_logging(cfg.logging.level)

    try:
        transport = MQTTTransport(
            cfg.credentials.device_id,
            cfg.credentials.username,
            cfg.credentials.password,
        )
    except EngineInitError as e:
        logger.error(str(e))
        return EXIT_INIT_ERROR

    with transport:
        if args.command == "publish":
            status = _publish(transport, cfg, args)
        else:
            status = _subscribe(transport, cfg, args)
        _log_stats(transport)
    return status


__all__ = ["main", "setup_logging"]

if __name__ == "__main__":
    sys.exit(main())
