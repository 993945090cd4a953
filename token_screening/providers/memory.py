"""
In-memory provider.

Serves fixed SecurityInfo / TokenOverview fixtures per token,
with optional latency and injected failures. Used by the test
suite and by the CLI demo mode.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Dict, Optional, Union

from ..exceptions import ProviderError, ProviderErrorKind
from ..types import SecurityInfo, TokenIdentifier, TokenOverview
from .base import OverviewProvider, SecurityProvider


logger = logging.getLogger(__name__)


TokenKey = Union[str, TokenIdentifier]


class InMemoryProvider(SecurityProvider, OverviewProvider):
    """
    Fake provider implementing both contracts.

    Unknown tokens fail with NOT_FOUND. Latency applies to every
    call; an injected error is raised after the latency elapses.
    """

    def __init__(
        self,
        security_latency: float = 0.0,
        overview_latency: float = 0.0,
        provider_name: str = "memory",
    ) -> None:
        self._name = provider_name
        self.security_latency = security_latency
        self.overview_latency = overview_latency

        self._security: Dict[str, SecurityInfo] = {}
        self._overview: Dict[str, TokenOverview] = {}
        self._security_errors: Dict[str, ProviderError] = {}
        self._overview_errors: Dict[str, ProviderError] = {}

        # Call accounting
        self.security_calls = 0
        self.overview_calls = 0
        self.canceled_calls = 0
        self.credibility_requests = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def total_calls(self) -> int:
        return self.security_calls + self.overview_calls

    # ─────────────────────────────────────────────────────────────
    # Fixtures
    # ─────────────────────────────────────────────────────────────

    def add_token(
        self,
        token_id: TokenKey,
        security: Optional[SecurityInfo] = None,
        overview: Optional[TokenOverview] = None,
    ) -> None:
        key = str(token_id)
        self._security[key] = security or SecurityInfo(source_name=self._name)
        self._overview[key] = overview or TokenOverview(source_name=self._name)

    def remove_token(self, token_id: TokenKey) -> None:
        key = str(token_id)
        self._security.pop(key, None)
        self._overview.pop(key, None)

    def fail_security(self, token_id: TokenKey, error: ProviderError) -> None:
        self._security_errors[str(token_id)] = error

    def fail_overview(self, token_id: TokenKey, error: ProviderError) -> None:
        self._overview_errors[str(token_id)] = error

    def clear_failures(self) -> None:
        self._security_errors.clear()
        self._overview_errors.clear()

    def reset_counters(self) -> None:
        self.security_calls = 0
        self.overview_calls = 0
        self.canceled_calls = 0
        self.credibility_requests = 0

    # ─────────────────────────────────────────────────────────────
    # Contracts
    # ─────────────────────────────────────────────────────────────

    async def fetch_security_info(
        self,
        token_id: TokenIdentifier,
        *,
        include_credibility: bool = True,
    ) -> SecurityInfo:
        self.security_calls += 1
        if include_credibility:
            self.credibility_requests += 1

        key = str(token_id)
        await self._delay(self.security_latency)

        if key in self._security_errors:
            raise self._security_errors[key]
        if key not in self._security:
            raise self._not_found(key)

        info = self._security[key]
        if not include_credibility:
            info = replace(info, has_audit=None, has_social_media=None)
        return info

    async def fetch_overview(self, token_id: TokenIdentifier) -> TokenOverview:
        self.overview_calls += 1

        key = str(token_id)
        await self._delay(self.overview_latency)

        if key in self._overview_errors:
            raise self._overview_errors[key]
        if key not in self._overview:
            raise self._not_found(key)
        return self._overview[key]

    async def _delay(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            self.canceled_calls += 1
            raise

    def _not_found(self, key: str) -> ProviderError:
        return ProviderError(
            "Token not found",
            kind=ProviderErrorKind.NOT_FOUND,
            provider_name=self._name,
            token_id=key,
        )
