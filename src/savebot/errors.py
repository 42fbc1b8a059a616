"""Error taxonomy for the capture bot.

Only StartupError is allowed to terminate the process. Everything else is
caught at a handler boundary and recorded to the error log.
"""

from typing import Any


class SaveBotError(Exception):
    """Base exception for all bot errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class TransportError(SaveBotError):
    """Raised when the transport connection drops or a transport call fails."""

    pass


class RetrievalError(TransportError):
    """Raised when media bytes cannot be retrieved or decrypted."""

    pass


class PersistenceError(SaveBotError):
    """Raised when a disk write fails."""

    pass


class StartupError(SaveBotError):
    """Raised when the process cannot start safely (fatal)."""

    pass


class ConfigError(StartupError):
    """Raised when configuration is invalid or missing."""

    pass


class ClassificationAmbiguity(SaveBotError):
    """Raised when an envelope cannot be decoded into a single payload kind.

    Never escapes the classifier: it is downgraded to an unknown record.
    """

    pass
