"""
Token Screening - Configuration.

============================================================
PURPOSE
============================================================
Defines all configuration dataclasses and threshold values
for the scoring engine, the result cache, the providers and
the screener.

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable configurations (frozen dataclasses)
- Scoring weights sum to exactly 100
- Every threshold has documentation
- Environment loading in one place (from_env)

============================================================
SCORING WEIGHTS
============================================================
    liquidity              15
    lp_lock                20
    holder_concentration   10
    authorities            15  (mint 8 + freeze 7)
    honeypot               20
    credibility            20  (ownership 6 + audit 5 + age 5 + social 4)
                          ---
                          100

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .exceptions import ConfigurationError


# ============================================================
# SCORING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ScoringWeights:
    """
    Maximum points per scoring factor.

    Authority and credibility points are split into their
    components; the factor maximum is the sum of its parts.
    """

    liquidity: int = 15
    lp_lock: int = 20
    holder_concentration: int = 10
    mint_authority: int = 8
    freeze_authority: int = 7
    honeypot: int = 20
    ownership_renounced: int = 6
    audit: int = 5
    token_age: int = 5
    social_media: int = 4

    @property
    def authorities(self) -> int:
        return self.mint_authority + self.freeze_authority

    @property
    def credibility(self) -> int:
        return self.ownership_renounced + self.audit + self.token_age + self.social_media

    @property
    def total(self) -> int:
        return (
            self.liquidity
            + self.lp_lock
            + self.holder_concentration
            + self.authorities
            + self.honeypot
            + self.credibility
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "liquidity": self.liquidity,
            "lp_lock": self.lp_lock,
            "holder_concentration": self.holder_concentration,
            "mint_authority": self.mint_authority,
            "freeze_authority": self.freeze_authority,
            "honeypot": self.honeypot,
            "ownership_renounced": self.ownership_renounced,
            "audit": self.audit,
            "token_age": self.token_age,
            "social_media": self.social_media,
        }


@dataclass(frozen=True)
class CategoryThresholds:
    """
    Minimum score for each category band.

    SAFE >= 80, CAUTION >= 60, MEDIUM_RISK >= 30, else LIKELY_SCAM.
    """

    safe_min: int = 80
    caution_min: int = 60
    medium_risk_min: int = 30

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe_min": self.safe_min,
            "caution_min": self.caution_min,
            "medium_risk_min": self.medium_risk_min,
        }


@dataclass(frozen=True)
class ScoringConfig:
    """
    Master configuration for the scoring engine.

    ============================================================
    THRESHOLD RATIONALE
    ============================================================
    Liquidity breakpoints (USD -> points, linear in between):
    - below $5K: 0 (flagged)
    - $5K: 5, $25K: 8, $75K: 12, $100K and above: 15

    Holder concentration:
    - flagged above 70% held by the top 10 wallets

    Token age:
    - 30+ days: full age credit, 7+ days: partial credit

    ============================================================
    """

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    categories: CategoryThresholds = field(default_factory=CategoryThresholds)

    # (liquidity USD, points) in ascending order
    liquidity_breakpoints: Tuple[Tuple[Decimal, int], ...] = (
        (Decimal("5000"), 5),
        (Decimal("25000"), 8),
        (Decimal("75000"), 12),
        (Decimal("100000"), 15),
    )

    high_concentration_pct: Decimal = Decimal("70")
    # Flag only; the single largest holder carries no weight of its own
    high_single_holder_pct: Decimal = Decimal("25")

    mature_token_age_days: int = 30
    young_token_age_days: int = 7
    young_token_age_points: int = 3

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.weights.total != 100:
            errors.append(f"scoring weights must sum to 100, got {self.weights.total}")

        points = [p for _, p in self.liquidity_breakpoints]
        thresholds = [t for t, _ in self.liquidity_breakpoints]
        if not self.liquidity_breakpoints:
            errors.append("liquidity_breakpoints must not be empty")
        elif thresholds != sorted(thresholds) or points != sorted(points):
            errors.append("liquidity_breakpoints must be ascending")
        elif points[-1] != self.weights.liquidity:
            errors.append("last liquidity breakpoint must award the full liquidity weight")

        c = self.categories
        if not (100 >= c.safe_min > c.caution_min > c.medium_risk_min > 0):
            errors.append("category thresholds must satisfy 100 >= safe > caution > medium_risk > 0")

        if self.young_token_age_points > self.weights.token_age:
            errors.append("young_token_age_points exceeds the token_age weight")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "categories": self.categories.to_dict(),
            "liquidity_breakpoints": [
                [str(threshold), points] for threshold, points in self.liquidity_breakpoints
            ],
            "high_concentration_pct": str(self.high_concentration_pct),
            "high_single_holder_pct": str(self.high_single_holder_pct),
            "mature_token_age_days": self.mature_token_age_days,
            "young_token_age_days": self.young_token_age_days,
            "young_token_age_points": self.young_token_age_points,
        }


# ============================================================
# CACHE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class CacheConfig:
    """
    Configuration for the in-memory result cache.

    - ttl_seconds: freshness window for a screening result
    - max_entries: capacity bound; least-recently-used entries are
      evicted once expired entries have been purged
    - cleanup_interval_seconds: period of the background sweep of
      expired entries; 0 disables the sweep
    """

    ttl_seconds: float = 300.0          # 5 minutes
    max_entries: int = 10000
    cleanup_interval_seconds: float = 60.0

    def validate(self) -> List[str]:
        errors = []
        if self.ttl_seconds <= 0:
            errors.append("cache ttl_seconds must be positive")
        if self.max_entries < 1:
            errors.append("cache max_entries must be at least 1")
        if self.cleanup_interval_seconds < 0:
            errors.append("cache cleanup_interval_seconds must not be negative")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ttl_seconds": self.ttl_seconds,
            "max_entries": self.max_entries,
            "cleanup_interval_seconds": self.cleanup_interval_seconds,
        }


# ============================================================
# PROVIDER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class BirdeyeConfig:
    """Configuration for the Birdeye provider."""

    api_key: Optional[str] = None
    base_url: str = "https://public-api.birdeye.so"
    request_timeout_seconds: float = 10.0
    response_cache_ttl_seconds: float = 30.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "api_key": "***" if self.api_key else None,
            "base_url": self.base_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "response_cache_ttl_seconds": self.response_cache_ttl_seconds,
        }


# ============================================================
# SCREENER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ScreenerConfig:
    """
    Master configuration for the token screener.

    provider_timeout_seconds bounds each provider call and must be
    shorter than screen_timeout_seconds, the overall deadline of a
    screen() call.
    """

    provider_timeout_seconds: float = 5.0
    screen_timeout_seconds: float = 15.0
    single_flight: bool = True
    batch_concurrency: int = 4

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    birdeye: BirdeyeConfig = field(default_factory=BirdeyeConfig)

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ScreenerConfig":
        """Load configuration from environment variables (and .env)."""
        load_dotenv()
        try:
            return cls(
                provider_timeout_seconds=float(os.getenv("TOKEN_SCREENING_PROVIDER_TIMEOUT", "5")),
                screen_timeout_seconds=float(os.getenv("TOKEN_SCREENING_SCREEN_TIMEOUT", "15")),
                single_flight=os.getenv("TOKEN_SCREENING_SINGLE_FLIGHT", "true").lower() == "true",
                batch_concurrency=int(os.getenv("TOKEN_SCREENING_BATCH_CONCURRENCY", "4")),
                cache=CacheConfig(
                    ttl_seconds=float(os.getenv("TOKEN_SCREENING_CACHE_TTL", "300")),
                    max_entries=int(os.getenv("TOKEN_SCREENING_CACHE_MAX_ENTRIES", "10000")),
                    cleanup_interval_seconds=float(
                        os.getenv("TOKEN_SCREENING_CACHE_CLEANUP_INTERVAL", "60")
                    ),
                ),
                birdeye=BirdeyeConfig(
                    api_key=os.getenv("BIRDEYE_API_KEY") or None,
                    base_url=os.getenv("BIRDEYE_BASE_URL", "https://public-api.birdeye.so"),
                    request_timeout_seconds=float(os.getenv("BIRDEYE_REQUEST_TIMEOUT", "10")),
                ),
                log_level=os.getenv("LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}", original_error=e)

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.provider_timeout_seconds <= 0:
            errors.append("provider_timeout_seconds must be positive")
        if self.screen_timeout_seconds <= self.provider_timeout_seconds:
            errors.append("screen_timeout_seconds must be longer than provider_timeout_seconds")
        if self.batch_concurrency < 1:
            errors.append("batch_concurrency must be at least 1")

        errors.extend(self.scoring.validate())
        errors.extend(self.cache.validate())
        return errors

    def ensure_valid(self) -> "ScreenerConfig":
        """Raise ConfigurationError listing every problem, else return self."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_timeout_seconds": self.provider_timeout_seconds,
            "screen_timeout_seconds": self.screen_timeout_seconds,
            "single_flight": self.single_flight,
            "batch_concurrency": self.batch_concurrency,
            "scoring": self.scoring.to_dict(),
            "cache": self.cache.to_dict(),
            "birdeye": self.birdeye.to_dict(),
            "log_level": self.log_level,
        }


def get_default_config() -> ScreenerConfig:
    """Return the default screener configuration."""
    return ScreenerConfig()
