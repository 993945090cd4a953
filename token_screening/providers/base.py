"""
Provider contracts and the shared HTTP provider base.

The screener depends only on SecurityProvider and OverviewProvider.
Concrete adapters (Birdeye, the in-memory fake) implement one or
both contracts.

All providers MUST:
- Raise ProviderError (with a ProviderErrorKind) on failure
- Return None for any field they cannot determine
- Never retry internally beyond what their transport does
"""

import asyncio
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from ..exceptions import ProviderError, ProviderErrorKind
from ..types import SecurityInfo, TokenIdentifier, TokenOverview
from .models import ProviderHealth, ProviderIncident, ProviderStatus


logger = logging.getLogger(__name__)


# ============================================================
# CONTRACTS
# ============================================================


class SecurityProvider(ABC):
    """Source of authority, honeypot, holder and credibility signals."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def fetch_security_info(
        self,
        token_id: TokenIdentifier,
        *,
        include_credibility: bool = True,
    ) -> SecurityInfo:
        """
        Fetch security signals for a token.

        Args:
            token_id: Token to look up
            include_credibility: When False, skip audit/social lookups
                and leave has_audit / has_social_media as None

        Returns:
            SecurityInfo, unknown fields None

        Raises:
            ProviderError: TIMEOUT, RATE_LIMITED, NOT_FOUND or UPSTREAM
        """
        pass


class OverviewProvider(ABC):
    """Source of liquidity, LP lock and age signals."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def fetch_overview(self, token_id: TokenIdentifier) -> TokenOverview:
        """
        Fetch market overview data for a token.

        Raises:
            ProviderError: TIMEOUT, RATE_LIMITED, NOT_FOUND or UPSTREAM
        """
        pass


# ============================================================
# HTTP BASE
# ============================================================


class BaseHttpProvider(ABC):
    """
    Shared aiohttp plumbing for REST-backed providers.

    Features:
    - Lazily created, optionally injected ClientSession
    - HTTP status to ProviderErrorKind mapping
    - Short-lived cache of raw JSON responses
    - Health tracking and a bounded incident log
    """

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_RESPONSE_CACHE_TTL = 30.0
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5
    MAX_INCIDENTS = 100
    MAX_RESPONSE_CACHE_ENTRIES = 1000

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        response_cache_ttl: float = DEFAULT_RESPONSE_CACHE_TTL,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._response_cache_ttl = response_cache_ttl
        self._session = session
        self._owns_session = session is None
        self._clock = clock

        # Raw response cache: key -> (expires_at, payload)
        self._responses: Dict[str, Tuple[float, Dict[str, Any]]] = {}

        # Requests in progress: key -> task, and task -> waiting callers
        self._in_flight: Dict[str, "asyncio.Task[Dict[str, Any]]"] = {}
        self._waiters: Dict["asyncio.Task[Dict[str, Any]]", int] = {}

        # Health tracking
        self._health = ProviderHealth(
            status=ProviderStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )
        self._last_successful_request: Optional[datetime] = None

        # Incident log
        self._incidents: List[ProviderIncident] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider."""
        pass

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "token-screening/1.0",
        }

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        token_id: Optional[TokenIdentifier] = None,
    ) -> Dict[str, Any]:
        """
        GET a JSON document, served from the response cache when fresh.

        Concurrent callers for the same document share one request.
        The request is cancelled only when every caller waiting on it
        has been cancelled.
        """
        key = self._response_key(path, params, headers)

        cached = self._responses.get(key)
        if cached is not None and self._clock() < cached[0]:
            logger.debug(f"[{self.name}] Response cache hit for {path}")
            return cached[1]

        request = self._in_flight.get(key)
        if request is None:
            request = asyncio.ensure_future(
                self._fetch_json(key, path, params, headers, token_id)
            )
            self._in_flight[key] = request
            request.add_done_callback(lambda done: self._finish_request(key, done))
        else:
            logger.debug(f"[{self.name}] Joining in-flight request for {path}")

        self._waiters[request] = self._waiters.get(request, 0) + 1
        try:
            return await asyncio.shield(request)
        except asyncio.CancelledError:
            if not request.done() and self._waiters.get(request) == 1:
                request.cancel()
            raise
        finally:
            remaining = self._waiters.get(request, 1) - 1
            if remaining > 0:
                self._waiters[request] = remaining
            else:
                self._waiters.pop(request, None)

    def _finish_request(self, key: str, request: "asyncio.Task[Dict[str, Any]]") -> None:
        if self._in_flight.get(key) is request:
            del self._in_flight[key]
        # Nobody may be left to read the outcome
        if not request.cancelled():
            request.exception()

    async def _fetch_json(
        self,
        key: str,
        path: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        token_id: Optional[TokenIdentifier],
    ) -> Dict[str, Any]:
        try:
            payload = await self._make_request(
                "GET",
                f"{self._base_url}{path}",
                params=params,
                headers=headers,
                token_id=token_id,
            )
        except ProviderError as e:
            self._on_error(e, endpoint=path)
            raise

        self._on_success()
        now = self._clock()
        if self._response_cache_ttl > 0:
            if len(self._responses) >= self.MAX_RESPONSE_CACHE_ENTRIES:
                self._clean_responses(now)
            self._responses[key] = (now + self._response_cache_ttl, payload)
        return payload

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        token_id: Optional[TokenIdentifier] = None,
    ) -> Dict[str, Any]:
        """Make HTTP request with error mapping."""
        session = await self._get_session()
        token = str(token_id) if token_id else None

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
            ) as response:
                self._health.latency_ms = (time.time() - start_time) * 1000
                self._health.requests_total += 1
                self._parse_rate_limit_headers(response.headers)

                if response.status == 429:
                    raise ProviderError(
                        "Rate limit exceeded",
                        kind=ProviderErrorKind.RATE_LIMITED,
                        provider_name=self.name,
                        token_id=token,
                        status_code=429,
                        retry_after_seconds=self._parse_retry_after(response.headers),
                    )

                if response.status == 404:
                    raise ProviderError(
                        "Token not found",
                        kind=ProviderErrorKind.NOT_FOUND,
                        provider_name=self.name,
                        token_id=token,
                        status_code=404,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise ProviderError(
                        f"HTTP {response.status}",
                        kind=ProviderErrorKind.UPSTREAM,
                        provider_name=self.name,
                        token_id=token,
                        status_code=response.status,
                        context={"response_body": body[:500], "url": url},
                    )

                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
                    raise ProviderError(
                        "Malformed JSON response",
                        kind=ProviderErrorKind.UPSTREAM,
                        provider_name=self.name,
                        token_id=token,
                        status_code=response.status,
                        original_error=e,
                    )

        except asyncio.TimeoutError as e:
            raise ProviderError(
                "Request timed out",
                kind=ProviderErrorKind.TIMEOUT,
                provider_name=self.name,
                token_id=token,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise ProviderError(
                f"Connection error: {e}",
                kind=ProviderErrorKind.UPSTREAM,
                provider_name=self.name,
                token_id=token,
                original_error=e,
            )

    def _parse_rate_limit_headers(self, headers: Any) -> None:
        remaining = headers.get("X-RateLimit-Remaining") or headers.get("X-Rate-Limit-Remaining")
        if remaining:
            try:
                self._health.rate_limit_remaining = int(remaining)
            except ValueError:
                pass

    @staticmethod
    def _parse_retry_after(headers: Any) -> int:
        retry_after = headers.get("Retry-After")
        try:
            return int(retry_after) if retry_after else 60
        except ValueError:
            return 60

    # ─────────────────────────────────────────────────────────────
    # Response Cache
    # ─────────────────────────────────────────────────────────────

    def _response_key(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> str:
        key_parts = [
            self.name,
            path,
            json.dumps(params or {}, sort_keys=True),
            json.dumps(headers or {}, sort_keys=True),
        ]
        return hashlib.md5("|".join(key_parts).encode()).hexdigest()

    def _clean_responses(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._responses.items() if now >= expires_at]
        for key in expired:
            del self._responses[key]
        if len(self._responses) >= self.MAX_RESPONSE_CACHE_ENTRIES:
            self._responses.clear()
        logger.debug(f"[{self.name}] Cleaned {len(expired)} expired responses")

    def clear_response_cache(self) -> None:
        self._responses.clear()

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        self._last_successful_request = datetime.utcnow()
        self._health.last_check = self._last_successful_request
        self._health.consecutive_failures = 0

        if self._health.status != ProviderStatus.HEALTHY:
            if self._health.status != ProviderStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = ProviderStatus.HEALTHY

    def _on_error(self, error: ProviderError, endpoint: Optional[str] = None) -> None:
        self._health.error_count += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.utcnow()
        self._health.last_check = self._health.last_error_time

        # A missing token says nothing about provider health
        if error.kind != ProviderErrorKind.NOT_FOUND:
            self._health.consecutive_failures += 1

        if error.kind == ProviderErrorKind.RATE_LIMITED:
            self._health.status = ProviderStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != ProviderStatus.UNAVAILABLE:
                self._health.status = ProviderStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != ProviderStatus.DEGRADED:
                self._health.status = ProviderStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

        self._log_incident(error, endpoint)

    def _log_incident(self, error: ProviderError, endpoint: Optional[str] = None) -> None:
        self._incidents.append(ProviderIncident(
            provider_name=self.name,
            kind=error.kind.value,
            timestamp=datetime.utcnow(),
            error_message=str(error),
            token_id=error.token_id,
            endpoint=endpoint,
            status_code=error.status_code,
        ))
        if len(self._incidents) > self.MAX_INCIDENTS:
            self._incidents = self._incidents[-self.MAX_INCIDENTS:]

        logger.warning(f"[{self.name}] Incident: {error}")

    def get_health(self) -> ProviderHealth:
        return self._health

    def get_incidents(self, limit: int = 10) -> List[ProviderIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def is_healthy(self) -> bool:
        return self._health.is_healthy()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the HTTP session if this provider created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseHttpProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
