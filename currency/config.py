# config.py
from __future__ import annotations
from dataclasses import dataclass, field, fields
import logging
import os
import tomllib
from typing import Optional

from currency.framing import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE
from currency.session import CLIENT_MAX_FRAME_SIZE

log = logging.getLogger(__name__)

# ---- Config Sections ----

@dataclass(frozen=True, slots=True)
class ServerConfig:
    endpoint: str = ":4040"
    network: str = "tcp"
    data: Optional[str] = None  # None -> bundled dataset
    cert: Optional[str] = None
    key: Optional[str] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    idle_timeout: Optional[float] = None
    backlog: int = 16

@dataclass(frozen=True, slots=True)
class ClientConfig:
    endpoint: str = "localhost:4040"
    network: str = "tcp"
    tls: bool = False
    cafile: Optional[str] = None
    insecure: bool = False
    timeout: float = 300.0
    keepalive: float = 300.0
    max_attempts: int = 3
    backoff: float = 1.0
    backoff_factor: float = 1.0
    max_backoff: float = 30.0
    max_frame_size: int = CLIENT_MAX_FRAME_SIZE

@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# ---- Main Config ----

@dataclass(frozen=True, slots=True)
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, filename: Optional[str] = "currency.toml") -> Config:
        """
        Loads config from a TOML file with [server], [client] and [logging]
        sections. If the file doesn't exist, returns default config.
        """
        if not filename or not os.path.exists(filename):
            if filename:
                log.warning("%s not found. Using defaults.", filename)
            return cls()

        with open(filename, "rb") as f:
            data = tomllib.load(f)

        def unpack(dataclass_type, section_data):
            # Keys that don't belong to the section are ignored
            valid_keys = {f.name for f in fields(dataclass_type)}
            clean_data = {k.replace("-", "_"): v for k, v in section_data.items()}
            clean_data = {k: v for k, v in clean_data.items() if k in valid_keys}
            return dataclass_type(**clean_data)

        return cls(
            server=unpack(ServerConfig, data.get("server", {})),
            client=unpack(ClientConfig, data.get("client", {})),
            logging=unpack(LoggingConfig, data.get("logging", {})),
        )
