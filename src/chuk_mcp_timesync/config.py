"""Configuration for the time sync server.

Scalar settings come from environment variables; the server list lives in an
INI file so it can be edited by hand and written back by the service:

    [TimeSync]
    NTPServerList = ntp1.nim.ac.cn|pool.ntp.org|time.windows.com
"""

import configparser
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_SECTION = "TimeSync"
SERVER_LIST_KEY = "NTPServerList"
SERVER_SEPARATOR = "|"
SERVERS_ENV_VAR = "TIMESYNC_NTP_SERVERS"

DEFAULT_CONFIG_FILE = Path("~/.config/chuk-mcp-timesync/timesync.ini")

DEFAULT_NTP_SERVERS = [
    "ntp1.nim.ac.cn",
    "ntp2.nim.ac.cn",
    "ntp.ntsc.ac.cn",
    "cn.pool.ntp.org",
    "ntp.aliyun.com",
    "ntp1.aliyun.com",
    "ntp2.aliyun.com",
    "ntp.tencent.com",
    "ntp1.tencent.com",
    "ntp2.tencent.com",
    "pool.ntp.org",
    "time.windows.com",
]


def parse_server_list(value: str) -> list[str]:
    """Split a pipe-delimited server list, dropping blanks."""
    return [s.strip() for s in value.split(SERVER_SEPARATOR) if s.strip()]


class TimeSyncConfig(BaseModel):
    """Settings snapshot handed to the scheduler."""

    ntp_servers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NTP_SERVERS),
        description="NTP servers in query order",
    )
    ntp_timeout: float = Field(3.0, gt=0, description="Send/receive timeout in seconds")
    ntp_version: int = Field(3, ge=1, le=7, description="Protocol version in requests")
    ntp_port: int = Field(123, ge=1, le=65535, description="Server UDP port")
    sync_interval: float = Field(900.0, gt=0, description="Seconds between periodic scans")
    max_drift_ms: float = Field(
        500.0, ge=0, description="Drift tolerated before the clock is set"
    )

    @field_validator("ntp_servers")
    @classmethod
    def _clean_servers(cls, value: list[str]) -> list[str]:
        servers = [s.strip() for s in value if s and s.strip()]
        if not servers:
            raise ValueError("at least one NTP server is required")
        return servers


class ConfigStore:
    """INI-backed storage for the server list."""

    def __init__(self, path: str | Path | None = None):
        if path is None:
            path = os.environ.get("TIMESYNC_CONFIG_FILE", str(DEFAULT_CONFIG_FILE))
        self.path = Path(path).expanduser()

    def _read(self) -> configparser.ConfigParser:
        parser = configparser.ConfigParser()
        # Keep key case as written
        parser.optionxform = str  # type: ignore[assignment,method-assign]
        if self.path.exists():
            parser.read(self.path, encoding="utf-8")
        return parser

    def get_server_list(self) -> list[str]:
        """Return the stored server list, or the default list when unset."""
        parser = self._read()
        stored = parser.get(CONFIG_SECTION, SERVER_LIST_KEY, fallback="")
        servers = parse_server_list(stored)
        if not servers:
            return list(DEFAULT_NTP_SERVERS)
        return servers

    def set_server_list(self, servers: list[str]) -> None:
        """Write the server list, creating the file if needed."""
        parser = self._read()
        if not parser.has_section(CONFIG_SECTION):
            parser.add_section(CONFIG_SECTION)
        parser.set(CONFIG_SECTION, SERVER_LIST_KEY, SERVER_SEPARATOR.join(servers))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            parser.write(f)
        logger.info("Saved %d NTP servers to %s", len(servers), self.path)


def servers_from_environment() -> bool:
    """Whether the server list is overridden by TIMESYNC_NTP_SERVERS."""
    return bool(os.environ.get(SERVERS_ENV_VAR))


def get_config(store: ConfigStore | None = None) -> TimeSyncConfig:
    """Build a config from the store and TIMESYNC_* environment variables.

    Args:
        store: Server list storage (defaults to ConfigStore())

    Returns:
        Validated TimeSyncConfig
    """
    if store is None:
        store = ConfigStore()

    env_servers = os.environ.get(SERVERS_ENV_VAR)
    servers = parse_server_list(env_servers) if env_servers else store.get_server_list()

    settings: dict[str, object] = {"ntp_servers": servers}
    for field_name in ("ntp_timeout", "ntp_version", "ntp_port", "sync_interval", "max_drift_ms"):
        value = os.environ.get(f"TIMESYNC_{field_name.upper()}")
        if value:
            settings[field_name] = value

    return TimeSyncConfig.model_validate(settings)
