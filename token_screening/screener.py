"""
Token Screening - Screener (Orchestrator).

============================================================
PURPOSE
============================================================
The TokenScreener is the main entry point for screening.

It orchestrates:
1. Input validation
2. Cache lookup
3. Concurrent security + overview fetches
4. Scoring
5. Cache store

============================================================
DESIGN PRINCIPLES
============================================================
- Depends only on the provider contracts, never an adapter
- A failed screening never writes to the cache
- No internal retries: retry policy belongs to the caller
- Provider timeouts are shorter than the screening deadline
- One provider timing out does not abort the other call

============================================================
CANCELLATION
============================================================
- Deadline expiry (timeout): ScreeningCanceledError
- Task cancellation by the caller: both provider calls are
  cancelled and asyncio.CancelledError propagates
Neither path writes to the cache.

============================================================
SINGLE-FLIGHT
============================================================
Concurrent misses for the same token share one upstream fetch.
Followers get the leader's result (or its provider error). If
the leader is cancelled or runs out of its own deadline, a
follower fetches on its own.

============================================================
USAGE
============================================================
    from token_screening import TokenScreener, ScreeningLevel
    from token_screening.providers import BirdeyeProvider

    provider = BirdeyeProvider()
    async with TokenScreener(provider, provider) as screener:
        result = await screener.screen("solana:So11111111111111111111111111111111111111112")
        print(result.category.value, result.score)

============================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Union

from .cache import ResultCache, ScreeningCache
from .config import ScreenerConfig
from .exceptions import (
    InvalidInputError,
    ProviderError,
    ProviderErrorKind,
    ScreeningCanceledError,
    ScreeningError,
)
from .providers.base import OverviewProvider, SecurityProvider
from .scoring import ScoringEngine
from .types import (
    RiskFactors,
    ScreeningLevel,
    ScreeningResult,
    SecurityInfo,
    TokenIdentifier,
    TokenOverview,
)


logger = logging.getLogger(__name__)


class TokenScreener:
    """
    Screens tokens against the weighted risk model.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Validate token identifiers and levels
    2. Serve fresh cached results
    3. Fetch both providers concurrently under timeouts
    4. Score, stamp and cache successful results
    5. De-duplicate concurrent fetches for the same token

    ============================================================
    """

    def __init__(
        self,
        security_provider: SecurityProvider,
        overview_provider: OverviewProvider,
        cache: Optional[ScreeningCache] = None,
        config: Optional[ScreenerConfig] = None,
        scoring_engine: Optional[ScoringEngine] = None,
    ):
        """
        Initialize the screener.

        Args:
            security_provider: Source of security signals
            overview_provider: Source of liquidity/LP/age signals
            cache: Result cache. Defaults to a ResultCache built
                   from config.cache
            config: Screener configuration. Uses defaults if not provided.
            scoring_engine: Scoring engine. Built from config.scoring
                            if not provided.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = (config or ScreenerConfig()).ensure_valid()
        self._security = security_provider
        self._overview = overview_provider
        self._cache = cache if cache is not None else ResultCache(self.config.cache)
        self._engine = scoring_engine or ScoringEngine(self.config.scoring)

        # flight key -> future of the leader's result
        self._in_flight: Dict[str, "asyncio.Future[ScreeningResult]"] = {}

        self._stats = {
            "screens": 0,
            "cache_hits": 0,
            "shared_fetches": 0,
            "upstream_fetches": 0,
            "failures": 0,
            "cancellations": 0,
        }

    @property
    def cache(self) -> ScreeningCache:
        return self._cache

    # ==========================================================
    # PUBLIC API
    # ==========================================================

    async def screen(
        self,
        token_id: Union[str, TokenIdentifier],
        level: Union[str, ScreeningLevel] = ScreeningLevel.NORMAL,
        *,
        timeout: Optional[float] = None,
    ) -> ScreeningResult:
        """
        Screen one token.

        Args:
            token_id: "chain:address", a bare Solana address, or a
                      TokenIdentifier
            level: How much factor data to request
            timeout: Overall deadline in seconds. Defaults to
                     config.screen_timeout_seconds

        Returns:
            ScreeningResult (cached or freshly computed)

        Raises:
            InvalidInputError: Malformed token, level or timeout
            ProviderError: A provider call failed
            ScreeningCanceledError: The deadline expired
        """
        # --------------------------------------------------
        # Step 1: Validate input
        # --------------------------------------------------
        token = TokenIdentifier.parse(token_id)
        level = ScreeningLevel.from_value(level)
        timeout = self._resolve_timeout(timeout, str(token))

        self._stats["screens"] += 1
        key = str(token)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            # --------------------------------------------------
            # Step 2: Cache lookup
            # --------------------------------------------------
            cached = self._cache.get(key, level)
            if cached is not None:
                self._stats["cache_hits"] += 1
                logger.debug(f"Cache hit for {key} (level={cached.level.value})")
                return cached

            if not self.config.single_flight:
                return await self._screen_uncached(token, level, deadline, timeout)

            # --------------------------------------------------
            # Step 3: Join an in-flight fetch, or lead one
            # --------------------------------------------------
            pending = self._find_flight(key, level)
            if pending is None:
                return await self._lead_flight(token, level, deadline, timeout)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise self._deadline_error(key, timeout)

            done, _ = await asyncio.wait({pending}, timeout=remaining)
            if not done:
                self._stats["cancellations"] += 1
                raise self._deadline_error(key, timeout)

            if pending.cancelled():
                logger.debug(f"Leader for {key} was cancelled, fetching again")
                continue

            self._stats["shared_fetches"] += 1
            error = pending.exception()
            if error is not None:
                raise error
            return pending.result().copy()

    async def screen_many(
        self,
        token_ids: Iterable[Union[str, TokenIdentifier]],
        level: Union[str, ScreeningLevel] = ScreeningLevel.NORMAL,
        concurrency: Optional[int] = None,
    ) -> Dict[str, Union[ScreeningResult, ScreeningError]]:
        """
        Screen several tokens with bounded concurrency.

        Returns a mapping in input order from token (canonical form
        when it parses, else as given) to its result or the
        ScreeningError that prevented it.
        """
        limit = concurrency or self.config.batch_concurrency
        if limit < 1:
            raise InvalidInputError("concurrency must be at least 1", field_name="concurrency")
        semaphore = asyncio.Semaphore(limit)

        async def _one(raw: Union[str, TokenIdentifier]) -> Union[ScreeningResult, ScreeningError]:
            async with semaphore:
                try:
                    return await self.screen(raw, level)
                except ScreeningError as e:
                    return e

        items = list(token_ids)
        outcomes = await asyncio.gather(*(_one(raw) for raw in items))

        results: Dict[str, Union[ScreeningResult, ScreeningError]] = {}
        for raw, outcome in zip(items, outcomes):
            if isinstance(outcome, ScreeningResult):
                results[outcome.token_id] = outcome
            else:
                results[outcome.token_id or str(raw)] = outcome
        return results

    def invalidate(self, token_id: Union[str, TokenIdentifier]) -> bool:
        """Drop a token's cached result."""
        return self._cache.invalidate(str(TokenIdentifier.parse(token_id)))

    # ==========================================================
    # LIFECYCLE
    # ==========================================================

    async def start(self) -> None:
        """Start the cache's background sweep."""
        await self._cache.start()
        logger.info("Token screener started")

    async def close(self) -> None:
        """Stop the cache sweep and close provider sessions."""
        await self._cache.stop()

        closed = set()
        for provider in (self._security, self._overview):
            if id(provider) in closed:
                continue
            closed.add(id(provider))
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        logger.info("Token screener closed")

    async def __aenter__(self) -> "TokenScreener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self._stats)
        stats["in_flight"] = len(self._in_flight)
        stats["cache"] = self._cache.get_stats()
        return stats

    # ==========================================================
    # INTERNALS
    # ==========================================================

    def _resolve_timeout(self, timeout: Optional[float], key: str) -> float:
        if timeout is None:
            return self.config.screen_timeout_seconds
        if timeout <= 0:
            raise InvalidInputError(
                f"timeout must be positive, got {timeout}s",
                token_id=key,
                field_name="timeout",
            )
        if timeout <= self.config.provider_timeout_seconds:
            logger.debug(
                f"Deadline {timeout}s is shorter than the provider timeout "
                f"({self.config.provider_timeout_seconds}s) and bounds both calls"
            )
        return timeout

    @staticmethod
    def _flight_key(key: str, level: ScreeningLevel) -> str:
        return f"{key}|{level.value}"

    def _find_flight(
        self,
        key: str,
        level: ScreeningLevel,
    ) -> Optional["asyncio.Future[ScreeningResult]"]:
        for candidate in ScreeningLevel:
            if candidate.covers(level):
                pending = self._in_flight.get(self._flight_key(key, candidate))
                if pending is not None:
                    return pending
        return None

    async def _lead_flight(
        self,
        token: TokenIdentifier,
        level: ScreeningLevel,
        deadline: float,
        timeout: float,
    ) -> ScreeningResult:
        flight_key = self._flight_key(str(token), level)
        future: "asyncio.Future[ScreeningResult]" = asyncio.get_running_loop().create_future()
        # Followers may all have gone; keep the loop from warning about it
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._in_flight[flight_key] = future

        try:
            result = await self._screen_uncached(token, level, deadline, timeout)
        except ScreeningCanceledError:
            # The leader's deadline is not the followers' deadline
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if not future.done():
                future.cancel()
            self._in_flight.pop(flight_key, None)

    async def _screen_uncached(
        self,
        token: TokenIdentifier,
        level: ScreeningLevel,
        deadline: float,
        timeout: float,
    ) -> ScreeningResult:
        key = str(token)
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise self._deadline_error(key, timeout)

        self._stats["upstream_fetches"] += 1
        logger.debug(f"Fetching {key} (level={level.value})")

        try:
            security, overview = await self._fetch_both(token, level, remaining, timeout)
        except ProviderError as e:
            self._stats["failures"] += 1
            logger.warning(f"Screening failed for {key}: {e}")
            raise
        except ScreeningCanceledError:
            self._stats["cancellations"] += 1
            logger.warning(f"Screening deadline expired for {key} after {timeout}s")
            raise
        except asyncio.CancelledError:
            self._stats["cancellations"] += 1
            logger.info(f"Screening cancelled for {key}")
            raise

        # --------------------------------------------------
        # Step 4: Score and store
        # --------------------------------------------------
        factors = RiskFactors.from_provider_data(security, overview)
        outcome = self._engine.score(factors)
        result = ScreeningResult.from_outcome(
            token_id=key,
            outcome=outcome,
            level=level,
            computed_at=datetime.now(timezone.utc),
            details=factors.to_details(),
        )
        self._cache.put(key, result)

        logger.info(
            f"Screened {key}: score={result.score} category={result.category.value} "
            f"flags={len(result.flags)}"
        )
        return result

    async def _fetch_both(
        self,
        token: TokenIdentifier,
        level: ScreeningLevel,
        remaining: float,
        timeout: float,
    ):
        """Run both provider calls concurrently; return (security, overview)."""
        security_task = asyncio.ensure_future(self._call_provider(
            self._security.fetch_security_info(
                token,
                include_credibility=level.include_credibility,
            ),
            self._security.name,
            token,
        ))
        overview_task = asyncio.ensure_future(self._call_provider(
            self._overview.fetch_overview(token),
            self._overview.name,
            token,
        ))
        tasks = [security_task, overview_task]

        try:
            done, pending = await asyncio.wait(tasks, timeout=remaining)
        except asyncio.CancelledError:
            await self._abandon(tasks)
            raise

        if pending:
            # Mark early failures as retrieved; the deadline error wins
            for task in done:
                if not task.cancelled():
                    task.exception()
            await self._abandon(list(pending))
            raise self._deadline_error(str(token), timeout)

        errors = [task.exception() for task in tasks if task.exception() is not None]
        if errors:
            raise self._select_error(errors)

        security: SecurityInfo = security_task.result()
        overview: TokenOverview = overview_task.result()
        return security, overview

    async def _call_provider(
        self,
        call: Awaitable[Any],
        provider_name: str,
        token: TokenIdentifier,
    ) -> Any:
        """Bound one provider call by the provider timeout and type its failures."""
        try:
            return await asyncio.wait_for(call, timeout=self.config.provider_timeout_seconds)
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"No response within {self.config.provider_timeout_seconds}s",
                kind=ProviderErrorKind.TIMEOUT,
                provider_name=provider_name,
                token_id=str(token),
                original_error=e,
            )
        except Exception as e:
            logger.error(f"[{provider_name}] Unexpected provider failure: {e}", exc_info=True)
            raise ProviderError(
                f"Unexpected provider failure: {e}",
                kind=ProviderErrorKind.UPSTREAM,
                provider_name=provider_name,
                token_id=str(token),
                original_error=e,
            )

    @staticmethod
    async def _abandon(tasks: List["asyncio.Future[Any]"]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _select_error(errors: List[BaseException]) -> BaseException:
        """Prefer a terminal provider error over a retryable one."""
        for error in errors:
            if isinstance(error, ProviderError) and not error.retryable:
                return error
        return errors[0]

    @staticmethod
    def _deadline_error(key: str, timeout: float) -> ScreeningCanceledError:
        return ScreeningCanceledError(
            f"Screening deadline of {timeout}s expired",
            token_id=key,
            timeout_seconds=timeout,
        )
