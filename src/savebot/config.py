"""Bot settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from savebot.errors import ConfigError

DEFAULT_RECONNECT_DELAY = 2.0
DEFAULT_MEDIA_TIMEOUT = 60.0
DEFAULT_MEDIA_RETRIES = 1
DEFAULT_MEDIA_RETRY_DELAY = 0.5
DEFAULT_PORT = 10000

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration.

    Attributes:
        auth_dir: Directory holding the credential blob.
        archive_dir: Archive root (logs plus the media directory).
        pairing_file: Single-slot file holding the current pairing code.
        reconnect_delay: Constant delay before a closed session restarts.
        reconnect_on_logged_out: Retry even when the remote logged us out.
        media_timeout: Seconds allowed per media retrieval attempt.
        media_retries: Extra retrieval attempts after the first one.
        media_retry_delay: Seconds between retrieval attempts.
        transport_factory: "module:callable" building the transport.
        host: HTTP bind host.
        port: HTTP bind port.
    """

    auth_dir: Path = Path("auth_info")
    archive_dir: Path = Path("saved")
    pairing_file: Path = Path("qr.txt")
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    reconnect_on_logged_out: bool = True
    media_timeout: float = DEFAULT_MEDIA_TIMEOUT
    media_retries: int = DEFAULT_MEDIA_RETRIES
    media_retry_delay: float = DEFAULT_MEDIA_RETRY_DELAY
    transport_factory: str = ""
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from SAVEBOT_* environment variables.

        Raises:
            ConfigError: If a numeric or boolean variable cannot be parsed.
        """
        return cls(
            auth_dir=Path(os.environ.get("SAVEBOT_AUTH_DIR", "auth_info")),
            archive_dir=Path(os.environ.get("SAVEBOT_ARCHIVE_DIR", "saved")),
            pairing_file=Path(os.environ.get("SAVEBOT_PAIRING_FILE", "qr.txt")),
            reconnect_delay=_env_float("SAVEBOT_RECONNECT_DELAY", DEFAULT_RECONNECT_DELAY),
            reconnect_on_logged_out=_env_bool("SAVEBOT_RECONNECT_ON_LOGGED_OUT", True),
            media_timeout=_env_float("SAVEBOT_MEDIA_TIMEOUT", DEFAULT_MEDIA_TIMEOUT),
            media_retries=_env_int("SAVEBOT_MEDIA_RETRIES", DEFAULT_MEDIA_RETRIES),
            media_retry_delay=_env_float(
                "SAVEBOT_MEDIA_RETRY_DELAY", DEFAULT_MEDIA_RETRY_DELAY
            ),
            transport_factory=os.environ.get("SAVEBOT_TRANSPORT_FACTORY", ""),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", DEFAULT_PORT),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number", {"value": raw}) from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative", {"value": raw})
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer", {"value": raw}) from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative", {"value": raw})
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean", {"value": raw})
