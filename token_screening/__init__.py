"""
Token Screening - Package.

============================================================
PURPOSE
============================================================
Screens blockchain tokens for rug-pull and honeypot risk.

Given a token identifier, gathers independent risk signals,
combines them into a 0-100 score (higher = safer) and a
discrete category, and caches the result.

============================================================
SIX SCORING FACTORS
============================================================
1. LIQUIDITY (15): pool depth in USD
2. LP_LOCK (20): share of LP tokens locked
3. HOLDER_CONCENTRATION (10): top-10 wallet share
4. AUTHORITIES (15): mint / freeze authority revoked
5. HONEYPOT (20): can holders sell at all
6. CREDIBILITY (20): ownership, audit, age, social

============================================================
CATEGORIES
============================================================
- SAFE (80-100)
- CAUTION (60-79)
- MEDIUM_RISK (30-59)
- LIKELY_SCAM (0-29, or any detected honeypot)

============================================================
USAGE
============================================================
    from token_screening import TokenScreener, ScreeningLevel
    from token_screening.providers import BirdeyeProvider

    provider = BirdeyeProvider()

    async with TokenScreener(provider, provider) as screener:
        result = await screener.screen(
            "solana:So11111111111111111111111111111111111111112",
            ScreeningLevel.QUICK,
        )
        print(f"{result.category.value}: {result.score}/100")
        for flag in result.flags:
            print(f"  - {flag}")

============================================================
"""

from .types import (
    Chain,
    ScreeningLevel,
    RiskCategory,
    ScoringFactor,
    TokenIdentifier,
    SecurityInfo,
    TokenOverview,
    RiskFactors,
    ScoreOutcome,
    ScreeningResult,
)
from .exceptions import (
    ScreeningError,
    InvalidInputError,
    ProviderError,
    ProviderErrorKind,
    ScreeningCanceledError,
    ConfigurationError,
)
from .config import (
    ScoringWeights,
    CategoryThresholds,
    ScoringConfig,
    CacheConfig,
    BirdeyeConfig,
    ScreenerConfig,
    get_default_config,
)
from .scoring import ScoringEngine, score_factors
from .cache import ScreeningCache, ResultCache, NoOpCache
from .screener import TokenScreener


__all__ = [
    # Types
    "Chain",
    "ScreeningLevel",
    "RiskCategory",
    "ScoringFactor",
    "TokenIdentifier",
    "SecurityInfo",
    "TokenOverview",
    "RiskFactors",
    "ScoreOutcome",
    "ScreeningResult",
    # Exceptions
    "ScreeningError",
    "InvalidInputError",
    "ProviderError",
    "ProviderErrorKind",
    "ScreeningCanceledError",
    "ConfigurationError",
    # Config
    "ScoringWeights",
    "CategoryThresholds",
    "ScoringConfig",
    "CacheConfig",
    "BirdeyeConfig",
    "ScreenerConfig",
    "get_default_config",
    # Engine
    "ScoringEngine",
    "score_factors",
    # Cache
    "ScreeningCache",
    "ResultCache",
    "NoOpCache",
    # Screener
    "TokenScreener",
]

__version__ = "1.0.0"
