"""
Token constants, fake clock and factor builders shared by the tests.
"""

from decimal import Decimal

from token_screening.types import RiskFactors, SecurityInfo, TokenOverview


SOL_TOKEN = "solana:So11111111111111111111111111111111111111112"
USDC_TOKEN = "solana:EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK_TOKEN = "solana:DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjB7YaB1pPB263"
UNKNOWN_TOKEN = "solana:Unknown1111111111111111111111111111111111111"
EVM_TOKEN = "ethereum:0x6B175474E89094C44Da98b954EedeAC495271d0F"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def safe_security(**overrides) -> SecurityInfo:
    fields = dict(
        mint_authority_revoked=True,
        freeze_authority_revoked=True,
        is_honeypot=False,
        ownership_renounced=True,
        holder_concentration_top10_pct=Decimal("25"),
        has_audit=False,
        has_social_media=True,
        source_name="memory",
    )
    fields.update(overrides)
    return SecurityInfo(**fields)


def safe_overview(**overrides) -> TokenOverview:
    fields = dict(
        liquidity_usd=Decimal("150000"),
        lp_locked=True,
        lp_locked_percentage=Decimal("90"),
        token_age_days=30,
        source_name="memory",
    )
    fields.update(overrides)
    return TokenOverview(**fields)


def scenario_a(**overrides) -> RiskFactors:
    """Healthy token: every factor favourable except the audit."""
    fields = dict(
        liquidity_usd=Decimal("150000"),
        lp_locked=True,
        lp_locked_percentage=Decimal("90"),
        holder_concentration_top10_pct=Decimal("25"),
        mint_authority_revoked=True,
        freeze_authority_revoked=True,
        is_honeypot=False,
        ownership_renounced=True,
        token_age_days=30,
        has_audit=False,
        has_social_media=True,
    )
    fields.update(overrides)
    return RiskFactors(**fields)


