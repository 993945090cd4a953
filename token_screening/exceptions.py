"""
Token Screening Exceptions - Custom exception hierarchy.

Every failure surfaced by the screener is a structured exception with
a to_dict() form suitable for logging or returning over an API.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ProviderErrorKind(str, Enum):
    """Failure taxonomy shared by all upstream providers."""
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"

    @property
    def retryable(self) -> bool:
        """Whether a caller may retry with backoff."""
        return self in (ProviderErrorKind.TIMEOUT, ProviderErrorKind.RATE_LIMITED)


class ScreeningError(Exception):
    """Base exception for all token screening errors."""

    def __init__(
        self,
        message: str,
        token_id: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.token_id = token_id
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "token_id": self.token_id,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.token_id:
            parts.append(f"[token={self.token_id}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class InvalidInputError(ScreeningError):
    """Malformed token identifier or screening request. Never retried."""

    def __init__(
        self,
        message: str,
        token_id: Optional[str] = None,
        field_name: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, token_id, None, context)
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_name"] = self.field_name
        return data


class ProviderError(ScreeningError):
    """Failure reported by (or while talking to) an upstream data provider."""

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.UPSTREAM,
        provider_name: Optional[str] = None,
        token_id: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after_seconds: Optional[int] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, token_id, original_error, context)
        self.kind = kind
        self.provider_name = provider_name
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "kind": self.kind.value,
            "provider_name": self.provider_name,
            "status_code": self.status_code,
            "retry_after_seconds": self.retry_after_seconds,
            "retryable": self.retryable,
        })
        return data

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}({self.kind.value}): {self.message}"]
        if self.provider_name:
            parts.append(f"[provider={self.provider_name}]")
        if self.token_id:
            parts.append(f"[token={self.token_id}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ScreeningCanceledError(ScreeningError):
    """The screening deadline expired before both providers answered."""

    def __init__(
        self,
        message: str,
        token_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, token_id, original_error)
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout_seconds"] = self.timeout_seconds
        return data


class ConfigurationError(ScreeningError):
    """Invalid screener, cache or provider configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, None, original_error)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
