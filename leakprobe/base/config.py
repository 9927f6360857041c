# ============================================================================
# leakprobe/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# One place for every tunable the probe and the reference receiver use.
# Sections are frozen dataclasses; the master LeakProbeConfig is built from
# LEAKPROBE_* environment variables by from_env().
#
# The pipeline never reads the global singleton itself: callers hand it a
# config explicitly. get_config()/set_config() exist for the CLI glue and tests.
#
# ============================================================================

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from leakprobe import __version__
from leakprobe.errors import ErrorCode, LeakProbeError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"leakprobe/{__version__}"
DEFAULT_WINDOW_SECONDS = 6.0


# ============================================================================
# Candidate Collection Configuration
# ============================================================================

@dataclass(frozen=True)
class CollectorConfig:
    # Discovery servers handed to the connection object, in order.
    # Credentials for relays ride inside the URI: turn:user:secret@host:3478
    ice_servers: Tuple[str, ...] = ("stun:stun.l.google.com:19302",)

    # Hard deadline for candidate harvesting (seconds). Events arriving
    # after it are dropped. aiortc only publishes candidates once gathering
    # ends, and aioice waits up to 5s for discovery-server answers, so the
    # default sits above that.
    window_seconds: float = DEFAULT_WINDOW_SECONDS


# ============================================================================
# Outbound Lookup Configuration
# ============================================================================

@dataclass(frozen=True)
class LookupConfig:
    # Returns {"ip": "..."} for the caller's own public address
    public_ip_url: str = "https://api.ipify.org?format=json"

    # Per-address geolocation; {ip} is substituted with the literal
    geo_url_template: str = "https://freeipapi.com/api/json/{ip}"

    # Applies to every outbound request (connect + read)
    request_timeout: float = 10.0

    # Sent as the User-Agent header and reported in the fingerprint
    user_agent: str = DEFAULT_USER_AGENT


# ============================================================================
# Report Sink Configuration
# ============================================================================

@dataclass(frozen=True)
class SinkConfig:
    # Where the probe POSTs its finished report
    url: str = "http://127.0.0.1:9999/log"

    # Bind address for the reference receiver (leakprobe.server.api)
    host: str = "127.0.0.1"
    port: int = 9999

    # Name of the append-only log the receiver writes into the data dir
    log_name: str = "leak.log"

    # Largest accepted request body for the receiver
    max_body_mb: int = 50


# ============================================================================
# File Storage Configuration
# ============================================================================

@dataclass(frozen=True)
class StorageConfig:
    base_dir: Path = field(default_factory=lambda: Path.home() / ".leakprobe")

    def ensure(self) -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Console logging is always on; the rotating file is opt-in
    file_enabled: bool = False
    file_name: str = "leakprobe.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass(frozen=True)
class LeakProbeConfig:
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    lookup: LookupConfig = field(default_factory=LookupConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)
    debug: bool = False

    @property
    def sink_log_path(self) -> Path:
        return self.storage.base_dir / self.sink.log_name

    @property
    def log_file_path(self) -> Path:
        return self.storage.base_dir / self.log.file_name

    @classmethod
    def from_env(cls) -> "LeakProbeConfig":
        servers_str = os.getenv("LEAKPROBE_ICE_SERVERS", "")
        servers = tuple(s.strip() for s in servers_str.split(",") if s.strip())

        window = _env_float("LEAKPROBE_COLLECT_WINDOW", DEFAULT_WINDOW_SECONDS)
        if window <= 0:
            raise LeakProbeError(
                ErrorCode.CONFIG_INVALID,
                "Collection window must be positive",
                details={"LEAKPROBE_COLLECT_WINDOW": window},
            )

        collector = CollectorConfig(
            ice_servers=servers or CollectorConfig().ice_servers,
            window_seconds=window,
        )

        lookup = LookupConfig(
            public_ip_url=os.getenv("LEAKPROBE_PUBLIC_IP_URL", LookupConfig.public_ip_url),
            geo_url_template=os.getenv("LEAKPROBE_GEO_URL", LookupConfig.geo_url_template),
            request_timeout=_env_float("LEAKPROBE_HTTP_TIMEOUT", 10.0),
            user_agent=os.getenv("LEAKPROBE_USER_AGENT", DEFAULT_USER_AGENT),
        )
        if "{ip}" not in lookup.geo_url_template:
            raise LeakProbeError(
                ErrorCode.CONFIG_INVALID,
                "Geo lookup URL must contain an {ip} placeholder",
                details={"LEAKPROBE_GEO_URL": lookup.geo_url_template},
            )

        sink = SinkConfig(
            url=os.getenv("LEAKPROBE_SINK_URL", SinkConfig.url),
            host=os.getenv("LEAKPROBE_SINK_HOST", SinkConfig.host),
            port=_env_int("LEAKPROBE_SINK_PORT", SinkConfig.port),
            log_name=os.getenv("LEAKPROBE_SINK_LOG_NAME", SinkConfig.log_name),
        )

        base_dir = Path(os.getenv("LEAKPROBE_DATA_DIR", str(Path.home() / ".leakprobe")))
        storage = StorageConfig(base_dir=base_dir.expanduser())

        log = LogConfig(
            level=os.getenv("LEAKPROBE_LOG_LEVEL", "INFO"),
            file_enabled=os.getenv("LEAKPROBE_LOG_FILE", "false").lower() == "true",
        )

        return cls(
            collector=collector,
            lookup=lookup,
            sink=sink,
            storage=storage,
            log=log,
            debug=os.getenv("LEAKPROBE_DEBUG", "false").lower() == "true",
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise LeakProbeError(
            ErrorCode.CONFIG_INVALID,
            f"Environment variable {name} must be a number; got {raw!r}",
        ) from err


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise LeakProbeError(
            ErrorCode.CONFIG_INVALID,
            f"Environment variable {name} must be an integer; got {raw!r}",
        ) from err


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[LeakProbeConfig] = None


def get_config() -> LeakProbeConfig:
    """Get the global configuration instance, loading it from the environment once."""
    global _config
    if _config is None:
        _config = LeakProbeConfig.from_env()
    return _config


def set_config(config: Optional[LeakProbeConfig]) -> None:
    """Replace (or with None, reset) the global configuration. Mainly used for testing."""
    global _config
    _config = config


def setup_logging(config: Optional[LeakProbeConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Console output always; a rotating file in the data dir when enabled.
    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.storage.ensure()
        file_handler = RotatingFileHandler(
            cfg.log_file_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
