"""Configuration for the room chat server.

Reads from ``ROOM_CHAT_*`` environment variables with defaults suitable for
local development.

Example:
    >>> from room_chat.config import get_config
    >>> config = get_config()
    >>> config.port
    8080
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    """Parse boolean from environment variable string."""
    return value.lower() in ("true", "1", "yes", "on")


def _getenv_int(key: str, default: int) -> int:
    """Get integer from environment with fallback to default."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(
            f"Invalid integer value for {key}={value}, using default {default}"
        )
        return default


def _getenv_float(key: str, default: float) -> float:
    """Get float from environment with fallback to default."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(
            f"Invalid float value for {key}={value}, using default {default}"
        )
        return default


@dataclass
class RoomChatConfig:
    """Room chat configuration loaded from environment variables.

    Attributes:
        data_dir: Directory for JSON snapshots. None keeps all state in memory.
        host: Server bind host address.
        port: Server bind port number.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        cors_allowed_origins: Origins accepted by the Socket.IO endpoint.
        default_max_participants: Capacity used when create-room omits one.
        strict_capacity: Also enforce capacity when a user opens a room they
            are not a member of via room-exists.
        typing_expiry: Seconds without a refresh after which a typing
            indicator expires.
        typing_sweep_interval: Seconds between client-side typing sweeps.
        mcp_path: HTTP path of the read-only MCP endpoint.
    """

    data_dir: Optional[str] = field(
        default_factory=lambda: os.getenv("ROOM_CHAT_DATA_DIR")
    )
    host: str = field(default_factory=lambda: os.getenv("ROOM_CHAT_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _getenv_int("ROOM_CHAT_PORT", 8080))
    log_level: str = field(
        default_factory=lambda: os.getenv("ROOM_CHAT_LOG_LEVEL", "INFO")
    )
    cors_allowed_origins: str = field(
        default_factory=lambda: os.getenv("ROOM_CHAT_CORS_ORIGINS", "*")
    )
    default_max_participants: int = field(
        default_factory=lambda: _getenv_int("ROOM_CHAT_DEFAULT_MAX_PARTICIPANTS", 2)
    )
    strict_capacity: bool = field(
        default_factory=lambda: _parse_bool(
            os.getenv("ROOM_CHAT_STRICT_CAPACITY", "false")
        )
    )
    typing_expiry: float = field(
        default_factory=lambda: _getenv_float("ROOM_CHAT_TYPING_EXPIRY", 3.0)
    )
    typing_sweep_interval: float = field(
        default_factory=lambda: _getenv_float("ROOM_CHAT_TYPING_SWEEP_INTERVAL", 1.0)
    )
    mcp_path: str = field(default_factory=lambda: os.getenv("ROOM_CHAT_MCP_PATH", "/mcp"))

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"Invalid port number: {self.port}. Must be between 1 and 65535"
            )

        if self.default_max_participants < 2:
            raise ValueError(
                f"Invalid default capacity: {self.default_max_participants}. "
                "Must be at least 2"
            )

        if self.typing_expiry <= 0 or self.typing_sweep_interval <= 0:
            raise ValueError("Typing expiry and sweep interval must be positive")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            logger.warning(
                f"Invalid log level '{self.log_level}', using INFO. "
                f"Valid levels: {', '.join(valid_levels)}"
            )
            self.log_level = "INFO"
        self.log_level = self.log_level.upper()


_config: Optional[RoomChatConfig] = None


def get_config() -> RoomChatConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = RoomChatConfig()
    return _config


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
