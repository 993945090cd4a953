"""
Token Screening - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the token screening engine.

This module defines the enums and dataclasses exchanged between
the providers, the scoring engine, the cache and the screener.

============================================================
DESIGN PRINCIPLES
============================================================
- All types are immutable (frozen dataclasses)
- Unknown values are None, never a silent default
- Monetary and percentage values are Decimal, never float
- Enums for every closed set of values

============================================================
"""

import json
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from .exceptions import InvalidInputError


# ============================================================
# ENUMS
# ============================================================


class Chain(str, Enum):
    """Blockchain networks a token identifier can live on."""

    SOLANA = "solana"
    ETHEREUM = "ethereum"
    BSC = "bsc"
    BASE = "base"
    ARBITRUM = "arbitrum"
    POLYGON = "polygon"

    @property
    def is_evm(self) -> bool:
        return self is not Chain.SOLANA


class ScreeningLevel(str, Enum):
    """
    How much factor data a screening pass requests.

    - QUICK: authorities, honeypot, holders, liquidity, LP lock.
      Skips the audit/social (credibility) lookups.
    - NORMAL: everything.

    The level selects which provider calls are issued. It never
    changes the scoring formula.
    """

    QUICK = "quick"
    NORMAL = "normal"

    @property
    def depth(self) -> int:
        """Numeric ordering by thoroughness."""
        return {"quick": 0, "normal": 1}[self.value]

    @property
    def include_credibility(self) -> bool:
        """Whether audit/social lookups are requested."""
        return self.depth >= ScreeningLevel.NORMAL.depth

    def covers(self, other: "ScreeningLevel") -> bool:
        """True if a result at this level satisfies a request at `other`."""
        return self.depth >= other.depth

    @classmethod
    def from_value(cls, value: Union[str, "ScreeningLevel"]) -> "ScreeningLevel":
        """Coerce a string or level, raising InvalidInputError when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidInputError(
                f"Unknown screening level: {value!r}",
                field_name="level",
            ) from None


class RiskCategory(str, Enum):
    """
    Discrete risk category derived from the total score.

    Score bands (defaults, see CategoryThresholds):
    - SAFE:        80-100
    - CAUTION:     60-79
    - MEDIUM_RISK: 30-59
    - LIKELY_SCAM: 0-29 (also forced by a detected honeypot)
    """

    SAFE = "SAFE"
    CAUTION = "CAUTION"
    MEDIUM_RISK = "MEDIUM_RISK"
    LIKELY_SCAM = "LIKELY_SCAM"

    @classmethod
    def from_score(
        cls,
        score: int,
        safe_min: int = 80,
        caution_min: int = 60,
        medium_risk_min: int = 30,
    ) -> "RiskCategory":
        """Classify a 0-100 score into a category."""
        if score >= safe_min:
            return cls.SAFE
        elif score >= caution_min:
            return cls.CAUTION
        elif score >= medium_risk_min:
            return cls.MEDIUM_RISK
        return cls.LIKELY_SCAM

    @property
    def severity_order(self) -> int:
        """Numeric ordering for severity comparison."""
        return {
            "SAFE": 0,
            "CAUTION": 1,
            "MEDIUM_RISK": 2,
            "LIKELY_SCAM": 3,
        }[self.value]


class ScoringFactor(str, Enum):
    """The six weighted scoring dimensions."""

    LIQUIDITY = "liquidity"
    LP_LOCK = "lp_lock"
    HOLDER_CONCENTRATION = "holder_concentration"
    AUTHORITIES = "authorities"
    HONEYPOT = "honeypot"
    CREDIBILITY = "credibility"


# ============================================================
# HELPERS
# ============================================================


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a provider value to Decimal.

    Floats go through str() so that 0.1 stays 0.1. Returns None
    for None, booleans and anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ============================================================
# TOKEN IDENTIFIER
# ============================================================


_SOLANA_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class TokenIdentifier:
    """
    A token on a given chain.

    Canonical string form is "<chain>:<address>". Addresses are kept
    exactly as given (no case folding), so equality is exact match.
    """

    chain: Chain
    address: str

    def __post_init__(self) -> None:
        pattern = _EVM_ADDRESS if self.chain.is_evm else _SOLANA_ADDRESS
        if not isinstance(self.address, str) or not pattern.match(self.address):
            raise InvalidInputError(
                f"Malformed {self.chain.value} token address: {self.address!r}",
                token_id=f"{self.chain.value}:{self.address}",
                field_name="token_id",
            )

    @classmethod
    def parse(
        cls,
        value: Union[str, "TokenIdentifier"],
        default_chain: Chain = Chain.SOLANA,
    ) -> "TokenIdentifier":
        """
        Parse "chain:address" or a bare address on `default_chain`.

        Raises:
            InvalidInputError: If the value is empty, names an unknown
                chain, or the address does not match the chain's format
        """
        if isinstance(value, TokenIdentifier):
            return value
        if not isinstance(value, str) or not value:
            raise InvalidInputError(
                "Token identifier is required",
                field_name="token_id",
            )

        if ":" in value:
            chain_name, address = value.split(":", 1)
            try:
                chain = Chain(chain_name.lower())
            except ValueError:
                raise InvalidInputError(
                    f"Unknown chain: {chain_name!r}",
                    token_id=value,
                    field_name="chain",
                ) from None
        else:
            chain, address = default_chain, value

        return cls(chain=chain, address=address)

    def __str__(self) -> str:
        return f"{self.chain.value}:{self.address}"


# ============================================================
# PROVIDER PAYLOADS
# ============================================================


@dataclass(frozen=True)
class SecurityInfo:
    """Normalized output of a SecurityProvider."""

    mint_authority_revoked: Optional[bool] = None
    freeze_authority_revoked: Optional[bool] = None
    is_honeypot: Optional[bool] = None
    ownership_renounced: Optional[bool] = None
    holder_concentration_top10_pct: Optional[Decimal] = None
    has_audit: Optional[bool] = None
    has_social_media: Optional[bool] = None

    # Reported in result details, not weighted
    top_holder_pct: Optional[Decimal] = None
    is_token2022: Optional[bool] = None
    has_transfer_fee: Optional[bool] = None
    non_transferable: Optional[bool] = None
    mutable_metadata: Optional[bool] = None

    # Source info
    source_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint_authority_revoked": self.mint_authority_revoked,
            "freeze_authority_revoked": self.freeze_authority_revoked,
            "is_honeypot": self.is_honeypot,
            "ownership_renounced": self.ownership_renounced,
            "holder_concentration_top10_pct": _decimal_str(self.holder_concentration_top10_pct),
            "has_audit": self.has_audit,
            "has_social_media": self.has_social_media,
            "top_holder_pct": _decimal_str(self.top_holder_pct),
            "is_token2022": self.is_token2022,
            "has_transfer_fee": self.has_transfer_fee,
            "non_transferable": self.non_transferable,
            "mutable_metadata": self.mutable_metadata,
            "source_name": self.source_name,
        }


@dataclass(frozen=True)
class TokenOverview:
    """Normalized output of an OverviewProvider."""

    liquidity_usd: Optional[Decimal] = None
    lp_locked: Optional[bool] = None
    lp_locked_percentage: Optional[Decimal] = None
    token_age_days: Optional[int] = None

    # Source info
    source_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "liquidity_usd": _decimal_str(self.liquidity_usd),
            "lp_locked": self.lp_locked,
            "lp_locked_percentage": _decimal_str(self.lp_locked_percentage),
            "token_age_days": self.token_age_days,
            "source_name": self.source_name,
        }


# ============================================================
# SCORING INPUT
# ============================================================


@dataclass(frozen=True)
class RiskFactors:
    """
    Everything collected for one screening pass.

    Every field may be None, meaning "unknown". The scoring engine
    decides how unknown values score; nothing here substitutes a
    default.

    Fields are coerced on construction: numbers become finite
    Decimals (floats via str), NaN/Infinity and unparseable values
    become None, and anything other than a bool in a flag field
    becomes None.
    """

    liquidity_usd: Optional[Decimal] = None
    lp_locked: Optional[bool] = None
    lp_locked_percentage: Optional[Decimal] = None
    holder_concentration_top10_pct: Optional[Decimal] = None
    mint_authority_revoked: Optional[bool] = None
    freeze_authority_revoked: Optional[bool] = None
    is_honeypot: Optional[bool] = None
    ownership_renounced: Optional[bool] = None
    token_age_days: Optional[int] = None
    has_audit: Optional[bool] = None
    has_social_media: Optional[bool] = None

    # Details only
    top_holder_pct: Optional[Decimal] = None
    is_token2022: Optional[bool] = None
    has_transfer_fee: Optional[bool] = None
    non_transferable: Optional[bool] = None
    mutable_metadata: Optional[bool] = None

    _DECIMAL_FIELDS = (
        "liquidity_usd",
        "lp_locked_percentage",
        "holder_concentration_top10_pct",
        "top_holder_pct",
    )
    _FLAG_FIELDS = (
        "lp_locked",
        "mint_authority_revoked",
        "freeze_authority_revoked",
        "is_honeypot",
        "ownership_renounced",
        "has_audit",
        "has_social_media",
        "is_token2022",
        "has_transfer_fee",
        "non_transferable",
        "mutable_metadata",
    )

    def __post_init__(self) -> None:
        for name in self._DECIMAL_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        for name in self._FLAG_FIELDS:
            if not isinstance(getattr(self, name), bool):
                object.__setattr__(self, name, None)

        age = to_decimal(self.token_age_days)
        object.__setattr__(self, "token_age_days", int(age) if age is not None else None)

    @classmethod
    def from_provider_data(
        cls,
        security: SecurityInfo,
        overview: TokenOverview,
    ) -> "RiskFactors":
        """Merge the two provider payloads into one factor bundle."""
        return cls(
            liquidity_usd=overview.liquidity_usd,
            lp_locked=overview.lp_locked,
            lp_locked_percentage=overview.lp_locked_percentage,
            holder_concentration_top10_pct=security.holder_concentration_top10_pct,
            mint_authority_revoked=security.mint_authority_revoked,
            freeze_authority_revoked=security.freeze_authority_revoked,
            is_honeypot=security.is_honeypot,
            ownership_renounced=security.ownership_renounced,
            token_age_days=overview.token_age_days,
            has_audit=security.has_audit,
            has_social_media=security.has_social_media,
            top_holder_pct=security.top_holder_pct,
            is_token2022=security.is_token2022,
            has_transfer_fee=security.has_transfer_fee,
            non_transferable=security.non_transferable,
            mutable_metadata=security.mutable_metadata,
        )

    def to_details(self) -> Dict[str, Any]:
        """Measured values behind a verdict, in result JSON form."""
        return {
            "liquidityUsd": _decimal_str(self.liquidity_usd),
            "lpLocked": self.lp_locked,
            "lpLockedPct": _decimal_str(self.lp_locked_percentage),
            "top10HoldersPct": _decimal_str(self.holder_concentration_top10_pct),
            "topHolderPct": _decimal_str(self.top_holder_pct),
            "mintAuthorityRevoked": self.mint_authority_revoked,
            "freezeAuthorityRevoked": self.freeze_authority_revoked,
            "isHoneypot": self.is_honeypot,
            "ownershipRenounced": self.ownership_renounced,
            "tokenAgeDays": self.token_age_days,
            "hasAudit": self.has_audit,
            "hasSocialMedia": self.has_social_media,
            "isToken2022": self.is_token2022,
            "hasTransferFee": self.has_transfer_fee,
            "nonTransferable": self.non_transferable,
            "mutableMetadata": self.mutable_metadata,
        }


# ============================================================
# SCORING OUTPUT
# ============================================================


@dataclass(frozen=True)
class ScoreOutcome:
    """What the scoring engine computes from a RiskFactors bundle."""

    score: int
    category: RiskCategory
    breakdown: Dict[str, int] = field(default_factory=dict)
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScreeningResult:
    """
    The outcome of screening one token.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - score == clamp(sum(breakdown.values()), 0, 100)
    - category is a function of score, except that a detected
      honeypot always yields LIKELY_SCAM
    - "HONEYPOT DETECTED" comes first when present; the other
      flags keep the order in which factors were evaluated
    - details holds the measured values behind the verdict
    - computed_at is timezone-aware UTC

    ============================================================
    """

    token_id: str
    score: int
    category: RiskCategory
    breakdown: Dict[str, int]
    flags: Tuple[str, ...]
    computed_at: datetime
    level: ScreeningLevel = ScreeningLevel.NORMAL
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_outcome(
        cls,
        token_id: str,
        outcome: ScoreOutcome,
        level: ScreeningLevel,
        computed_at: Optional[datetime] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ScreeningResult":
        return cls(
            token_id=token_id,
            score=outcome.score,
            category=outcome.category,
            breakdown=dict(outcome.breakdown),
            flags=tuple(outcome.flags),
            computed_at=computed_at or datetime.now(timezone.utc),
            level=level,
            details=dict(details or {}),
        )

    @property
    def is_safe(self) -> bool:
        return self.category == RiskCategory.SAFE

    @property
    def is_likely_scam(self) -> bool:
        return self.category == RiskCategory.LIKELY_SCAM

    def copy(self) -> "ScreeningResult":
        """Copy with its own breakdown and details dicts."""
        return replace(
            self,
            breakdown=dict(self.breakdown),
            flags=tuple(self.flags),
            details=dict(self.details),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tokenID": self.token_id,
            "score": self.score,
            "category": self.category.value,
            "breakdown": dict(self.breakdown),
            "flags": list(self.flags),
            "computedAt": self.computed_at.isoformat(),
            "level": self.level.value,
            "details": dict(self.details),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScreeningResult":
        """Create from dictionary."""
        return cls(
            token_id=data["tokenID"],
            score=int(data["score"]),
            category=RiskCategory(data["category"]),
            breakdown={k: int(v) for k, v in data["breakdown"].items()},
            flags=tuple(data.get("flags", ())),
            computed_at=datetime.fromisoformat(data["computedAt"]),
            level=ScreeningLevel(data.get("level", ScreeningLevel.NORMAL.value)),
            details=dict(data.get("details") or {}),
        )


@dataclass
class CacheEntry:
    """Cache entry for a screening result. Owned by the cache."""

    result: ScreeningResult
    expires_at: float
    created_at: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def age_seconds(self, now: float) -> float:
        return now - self.created_at
