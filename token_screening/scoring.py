"""
Token Screening - Scoring Engine.

============================================================
PURPOSE
============================================================
Turns a RiskFactors bundle into a 0-100 score, a category,
a per-factor breakdown and an ordered list of flags.

Higher score = safer token.

============================================================
DESIGN PRINCIPLES
============================================================
- Pure function: same input = same output
- No I/O, no clock, no hidden state
- Decimal arithmetic, each factor floored to an int
- Total function: never raises on a RiskFactors bundle
- Unknown numerics score 0 and say so in the flags
- Unknown booleans score as the unfavourable case
- "HONEYPOT DETECTED" leads the flags when raised

============================================================
HONEYPOT OVERRIDE
============================================================
A known honeypot (is_honeypot is True) forces LIKELY_SCAM
whatever the arithmetic total. An unknown honeypot status only
costs the honeypot points.

============================================================
"""

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import List, Optional, Tuple

from .config import ScoringConfig
from .types import RiskCategory, RiskFactors, ScoreOutcome, ScoringFactor


logger = logging.getLogger(__name__)


_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

FLAG_LOW_LIQUIDITY = "Low liquidity"
FLAG_LP_NOT_LOCKED = "LP not locked"
FLAG_HIGH_CONCENTRATION = "High holder concentration"
FLAG_HIGH_SINGLE_HOLDER = "High single holder concentration"
FLAG_MINT_AND_FREEZE_ACTIVE = "Mint and freeze authority active (unlimited mint risk)"
FLAG_MINT_ACTIVE = "Mint authority active"
FLAG_FREEZE_ACTIVE = "Freeze authority active"
FLAG_HONEYPOT = "HONEYPOT DETECTED"
FLAG_HONEYPOT_UNKNOWN = "Honeypot status unknown"


def insufficient_data_flag(factor: ScoringFactor) -> str:
    return f"Insufficient data: {factor.value}"


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class ScoringEngine:
    """
    Weighted scoring model over six factors.

    ============================================================
    FACTORS (default weights)
    ============================================================
    liquidity             15  piecewise-linear over USD breakpoints
    lp_lock               20  scaled by locked percentage
    holder_concentration  10  inverse of top-10 share
    authorities           15  mint revoked 8, freeze revoked 7
    honeypot              20  all or nothing
    credibility           20  ownership 6, audit 5, age 5, social 4

    ============================================================
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(self, factors: RiskFactors) -> ScoreOutcome:
        """
        Score a factor bundle.

        Args:
            factors: Collected risk factors, any field may be None

        Returns:
            ScoreOutcome with score, category, breakdown and flags
        """
        flags: List[str] = []
        breakdown = {}

        # --------------------------------------------------
        # Step 1: Per-factor points, in evaluation order
        # --------------------------------------------------
        for factor, scorer in (
            (ScoringFactor.LIQUIDITY, self._score_liquidity),
            (ScoringFactor.LP_LOCK, self._score_lp_lock),
            (ScoringFactor.HOLDER_CONCENTRATION, self._score_holder_concentration),
            (ScoringFactor.AUTHORITIES, self._score_authorities),
            (ScoringFactor.HONEYPOT, self._score_honeypot),
            (ScoringFactor.CREDIBILITY, self._score_credibility),
        ):
            points, factor_flags = scorer(factors)
            breakdown[factor.value] = _floor(points)
            flags.extend(factor_flags)

        if FLAG_HONEYPOT in flags:
            flags.remove(FLAG_HONEYPOT)
            flags.insert(0, FLAG_HONEYPOT)

        # --------------------------------------------------
        # Step 2: Total and category
        # --------------------------------------------------
        total = max(0, min(100, sum(breakdown.values())))

        thresholds = self.config.categories
        if factors.is_honeypot is True:
            category = RiskCategory.LIKELY_SCAM
        else:
            category = RiskCategory.from_score(
                total,
                safe_min=thresholds.safe_min,
                caution_min=thresholds.caution_min,
                medium_risk_min=thresholds.medium_risk_min,
            )

        logger.debug(f"Scored factors: total={total} category={category.value} flags={flags}")

        return ScoreOutcome(
            score=total,
            category=category,
            breakdown=breakdown,
            flags=tuple(flags),
        )

    # ==========================================================
    # FACTOR SCORERS
    # ==========================================================

    def liquidity_points(self, liquidity_usd: Decimal) -> Decimal:
        """
        Interpolate liquidity points between breakpoints.

        Below the first breakpoint scores 0; at or above the last
        scores the full weight.
        """
        breakpoints = self.config.liquidity_breakpoints
        liquidity_usd = max(_ZERO, liquidity_usd)

        first_threshold, _ = breakpoints[0]
        if liquidity_usd < first_threshold:
            return _ZERO

        last_threshold, last_points = breakpoints[-1]
        if liquidity_usd >= last_threshold:
            return Decimal(last_points)

        for (low, low_pts), (high, high_pts) in zip(breakpoints, breakpoints[1:]):
            if low <= liquidity_usd < high:
                fraction = (liquidity_usd - low) / (high - low)
                return Decimal(low_pts) + fraction * (high_pts - low_pts)

        return Decimal(last_points)

    def _score_liquidity(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        if factors.liquidity_usd is None:
            return _ZERO, [insufficient_data_flag(ScoringFactor.LIQUIDITY)]

        points = self.liquidity_points(factors.liquidity_usd)
        if _floor(points) == 0:
            return _ZERO, [FLAG_LOW_LIQUIDITY]
        return points, []

    def _score_lp_lock(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        if factors.lp_locked is not True:
            return _ZERO, [FLAG_LP_NOT_LOCKED]
        if factors.lp_locked_percentage is None:
            return _ZERO, [insufficient_data_flag(ScoringFactor.LP_LOCK)]

        pct = _clamp(factors.lp_locked_percentage, _ZERO, _HUNDRED)
        return Decimal(self.config.weights.lp_lock) * pct / _HUNDRED, []

    def _score_holder_concentration(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        flags = []
        top_holder = factors.top_holder_pct
        if top_holder is not None and top_holder > self.config.high_single_holder_pct:
            flags.append(FLAG_HIGH_SINGLE_HOLDER)

        if factors.holder_concentration_top10_pct is None:
            return _ZERO, [insufficient_data_flag(ScoringFactor.HOLDER_CONCENTRATION)] + flags

        pct = _clamp(factors.holder_concentration_top10_pct, _ZERO, _HUNDRED)
        points = Decimal(self.config.weights.holder_concentration) * (_HUNDRED - pct) / _HUNDRED

        if pct > self.config.high_concentration_pct:
            flags.insert(0, FLAG_HIGH_CONCENTRATION)
        return points, flags

    def _score_authorities(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        weights = self.config.weights
        mint_revoked = factors.mint_authority_revoked is True
        freeze_revoked = factors.freeze_authority_revoked is True

        points = _ZERO
        if mint_revoked:
            points += weights.mint_authority
        if freeze_revoked:
            points += weights.freeze_authority

        if not mint_revoked and not freeze_revoked:
            return points, [FLAG_MINT_AND_FREEZE_ACTIVE]
        if not mint_revoked:
            return points, [FLAG_MINT_ACTIVE]
        if not freeze_revoked:
            return points, [FLAG_FREEZE_ACTIVE]
        return points, []

    def _score_honeypot(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        if factors.is_honeypot is None:
            return _ZERO, [FLAG_HONEYPOT_UNKNOWN]
        if factors.is_honeypot:
            return _ZERO, [FLAG_HONEYPOT]
        return Decimal(self.config.weights.honeypot), []

    def _score_credibility(self, factors: RiskFactors) -> Tuple[Decimal, List[str]]:
        weights = self.config.weights
        points = _ZERO

        if factors.ownership_renounced is True:
            points += weights.ownership_renounced
        if factors.has_audit is True:
            points += weights.audit
        if factors.has_social_media is True:
            points += weights.social_media

        # Age is the only numeric credibility signal
        if factors.token_age_days is None:
            return points, [insufficient_data_flag(ScoringFactor.CREDIBILITY)]

        age = max(0, factors.token_age_days)
        if age >= self.config.mature_token_age_days:
            points += weights.token_age
        elif age >= self.config.young_token_age_days:
            points += self.config.young_token_age_points
        return points, []


def score_factors(factors: RiskFactors, config: Optional[ScoringConfig] = None) -> ScoreOutcome:
    """Score a factor bundle with a throwaway engine."""
    return ScoringEngine(config).score(factors)
