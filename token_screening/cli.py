"""
Token Screening - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for screening tokens.

- Provides argparse-based CLI
- Loads configuration from environment (.env supported)
- Screens against Birdeye, or against built-in fixtures
  with --demo
- Prints a table or JSON

============================================================
USAGE
============================================================
token-screen solana:<mint>
token-screen <mint> --level quick --json
token-screen --demo

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from . import __version__
from .config import ScreenerConfig
from .exceptions import ConfigurationError, ScreeningError
from .providers import BirdeyeProvider, InMemoryProvider
from .screener import TokenScreener
from .types import ScreeningLevel, ScreeningResult, SecurityInfo, TokenOverview


# ============================================================
# DEMO FIXTURES
# ============================================================

DEMO_TOKENS: Dict[str, Tuple[SecurityInfo, TokenOverview]] = {
    "solana:DemoSafe1111111111111111111111111111111111": (
        SecurityInfo(
            mint_authority_revoked=True,
            freeze_authority_revoked=True,
            is_honeypot=False,
            ownership_renounced=True,
            holder_concentration_top10_pct=Decimal("25"),
            has_audit=False,
            has_social_media=True,
            source_name="demo",
        ),
        TokenOverview(
            liquidity_usd=Decimal("150000"),
            lp_locked=True,
            lp_locked_percentage=Decimal("90"),
            token_age_days=30,
            source_name="demo",
        ),
    ),
    "solana:DemoRisky111111111111111111111111111111111": (
        SecurityInfo(
            mint_authority_revoked=False,
            freeze_authority_revoked=True,
            is_honeypot=False,
            ownership_renounced=False,
            holder_concentration_top10_pct=Decimal("82"),
            has_audit=False,
            has_social_media=False,
            source_name="demo",
        ),
        TokenOverview(
            liquidity_usd=Decimal("12000"),
            lp_locked=False,
            token_age_days=2,
            source_name="demo",
        ),
    ),
    "solana:DemoHoneypot1111111111111111111111111111111": (
        SecurityInfo(
            mint_authority_revoked=True,
            freeze_authority_revoked=True,
            is_honeypot=True,
            ownership_renounced=True,
            holder_concentration_top10_pct=Decimal("20"),
            has_audit=True,
            has_social_media=True,
            source_name="demo",
        ),
        TokenOverview(
            liquidity_usd=Decimal("250000"),
            lp_locked=True,
            lp_locked_percentage=Decimal("100"),
            token_age_days=90,
            source_name="demo",
        ),
    ),
}


def build_demo_provider() -> InMemoryProvider:
    """Create an in-memory provider seeded with the demo tokens."""
    provider = InMemoryProvider(provider_name="demo")
    for token_id, (security, overview) in DEMO_TOKENS.items():
        provider.add_token(token_id, security, overview)
    return provider


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="token-screen",
        description="Screen tokens for rug-pull and honeypot risk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Categories:
  SAFE         score 80-100
  CAUTION      score 60-79
  MEDIUM_RISK  score 30-59
  LIKELY_SCAM  score 0-29, or a detected honeypot

Examples:
  %(prog)s solana:<mint>               # Full screening via Birdeye
  %(prog)s <mint> --level quick        # Skip audit/social lookups
  %(prog)s --demo --json               # Built-in fixtures, JSON output
        """
    )

    parser.add_argument(
        "tokens",
        nargs="*",
        help="Token identifiers (chain:address, or a bare Solana address)",
    )

    # --------------------------------------------------------
    # Screening Options
    # --------------------------------------------------------
    screening_group = parser.add_argument_group("Screening Options")

    screening_group.add_argument(
        "--level", "-l",
        type=str,
        choices=[level.value for level in ScreeningLevel],
        default=ScreeningLevel.NORMAL.value,
        help="Screening level (default: normal)",
    )

    screening_group.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall deadline per token in seconds",
    )

    screening_group.add_argument(
        "--demo",
        action="store_true",
        help="Use built-in demo fixtures instead of Birdeye",
    )

    # --------------------------------------------------------
    # Output Options
    # --------------------------------------------------------
    output_group = parser.add_argument_group("Output Options")

    output_group.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )

    output_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate parsed arguments, return list of errors."""
    errors = []
    if not args.tokens and not args.demo:
        errors.append("at least one token is required (or use --demo)")
    if args.timeout is not None and args.timeout <= 0:
        errors.append("--timeout must be positive")
    return errors


# ============================================================
# OUTPUT
# ============================================================

def format_result(result: ScreeningResult) -> str:
    lines = [
        f"{result.token_id}",
        f"  Category:  {result.category.value}",
        f"  Score:     {result.score}/100",
        f"  Level:     {result.level.value}",
        f"  Computed:  {result.computed_at.isoformat()}",
        "  Breakdown:",
    ]
    for factor, points in result.breakdown.items():
        lines.append(f"    {factor:22s} {points:3d}")
    if result.flags:
        lines.append("  Flags:")
        lines.extend(f"    - {flag}" for flag in result.flags)
    return "\n".join(lines)


def print_results(
    results: Dict[str, Union[ScreeningResult, ScreeningError]],
    as_json: bool,
) -> None:
    if as_json:
        payload = [
            outcome.to_dict() if isinstance(outcome, ScreeningResult)
            else {"tokenID": token, "error": outcome.to_dict()}
            for token, outcome in results.items()
        ]
        print(json.dumps(payload, indent=2))
        return

    print()
    print("=" * 60)
    print("  TOKEN SCREENING")
    print("=" * 60)
    for token, outcome in results.items():
        if isinstance(outcome, ScreeningResult):
            print(format_result(outcome))
        else:
            print(f"{token}\n  Error:     {outcome}")
        print("-" * 60)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: ScreenerConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code: 0 if every token was screened, 1 otherwise
    """
    if args.demo:
        security = overview = build_demo_provider()
    else:
        security = overview = BirdeyeProvider(config.birdeye)

    tokens = args.tokens or list(DEMO_TOKENS)

    try:
        async with TokenScreener(security, overview, config=config) as screener:
            if args.timeout is not None:
                results = {}
                for token in tokens:
                    try:
                        result = await screener.screen(token, args.level, timeout=args.timeout)
                        results[result.token_id] = result
                    except ScreeningError as e:
                        results[e.token_id or token] = e
            else:
                results = await screener.screen_many(tokens, args.level)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1

    print_results(results, args.json)
    return 0 if all(isinstance(r, ScreeningResult) for r in results.values()) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        config = ScreenerConfig.from_env()
        config.ensure_valid()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.log_level).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    return asyncio.run(async_main(args, config))


if __name__ == "__main__":
    sys.exit(main())
