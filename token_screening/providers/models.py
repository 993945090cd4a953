"""
Provider health and incident records.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ProviderStatus(Enum):
    """Health status of an upstream provider."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class ProviderHealth:
    """Health status of an upstream provider."""
    status: ProviderStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    rate_limit_remaining: Optional[int] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_total: int = 0

    def is_healthy(self) -> bool:
        return self.status == ProviderStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if the provider can still be used."""
        return self.status in (
            ProviderStatus.HEALTHY,
            ProviderStatus.DEGRADED,
            ProviderStatus.UNKNOWN,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "rate_limit_remaining": self.rate_limit_remaining,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_total": self.requests_total,
        }


@dataclass
class ProviderIncident:
    """Record of a failed provider call."""
    provider_name: str
    kind: str
    timestamp: datetime
    error_message: str
    token_id: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_name": self.provider_name,
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "token_id": self.token_id,
            "endpoint": self.endpoint,
            "status_code": self.status_code,
        }
