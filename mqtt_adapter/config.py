from __future__ import annotations

import tomllib
from dataclasses import dataclass, field


@dataclass
class BrokerConfig:
    host: str = "localhost"
    port: int = 8883  # TLS only


@dataclass
class CredentialsConfig:
    device_id: str = "mqtt-adapter"
    username: str = ""
    password: str = ""


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Config:
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_toml(path: str) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_config(path: str) -> Config:
    """
    Load a TOML config file into Config dataclasses.
    Missing sections fall back to defaults; unknown keys raise TypeError.
    """
    data = _parse_toml(path)

    br = data.get("broker", {})
    cr = data.get("credentials", {})
    lg = data.get("logging", {})

    cfg = Config(
        broker=BrokerConfig(**br) if br else BrokerConfig(),
        credentials=CredentialsConfig(**cr) if cr else CredentialsConfig(),
        logging=LoggingConfig(**lg) if lg else LoggingConfig(),
    )
    return cfg


__all__ = [
    "BrokerConfig",
    "CredentialsConfig",
    "LoggingConfig",
    "Config",
    "load_config",
]
