from __future__ import annotations

import threading

import paho.mqtt
from loguru import logger

MIN_ENGINE_MAJOR = 2


class EngineInitError(RuntimeError):
    """Raised when the MQTT engine cannot be initialised."""


def _engine_major(version: str) -> int:
    try:
        return int(version.split(".", 1)[0])
    except ValueError:
        return 0


class EngineLibrary:
    """
    Process-wide, reference-counted initialisation of the MQTT engine.

    The first live client initialises the engine, the last one to release it
    tears it down. Releasing from one client never invalidates the engine
    for another client that is still alive.
    """

    _lock = threading.Lock()
    _refcount: int = 0

    @classmethod
    def acquire(cls) -> None:
        with cls._lock:
            if cls._refcount == 0:
                cls._init()
            cls._refcount += 1

    @classmethod
    def release(cls) -> None:
        with cls._lock:
            if cls._refcount == 0:
                return
            cls._refcount -= 1
            if cls._refcount == 0:
                logger.debug("MQTT engine released by last client")

    @classmethod
    def refcount(cls) -> int:
        with cls._lock:
            return cls._refcount

    @classmethod
    def _init(cls) -> None:
        version = getattr(paho.mqtt, "__version__", "")
        if _engine_major(version) < MIN_ENGINE_MAJOR:
            message = (
                "Error while initializing MQTT engine: "
                f"paho-mqtt>={MIN_ENGINE_MAJOR}.0 required, found '{version}'"
            )
            logger.error(message)
            raise EngineInitError(message)
        logger.debug(f"MQTT engine initialised (paho-mqtt {version})")


__all__ = ["EngineInitError", "EngineLibrary"]
