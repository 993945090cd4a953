"""
Tests for screening providers.

============================================================
PURPOSE
============================================================
Verify Birdeye payload normalization, HTTP error mapping,
health tracking and the in-memory provider.

HTTP is never touched: either _get_json is patched or a fake
aiohttp session is injected.

============================================================
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from token_screening.config import BirdeyeConfig
from token_screening.exceptions import ProviderError, ProviderErrorKind
from token_screening.providers import BirdeyeProvider, InMemoryProvider, ProviderStatus
from token_screening.scoring import ScoringEngine
from token_screening.screener import TokenScreener
from token_screening.types import RiskFactors, TokenIdentifier

from screening_fixtures import EVM_TOKEN, SOL_TOKEN, safe_overview, safe_security


NOW = 1_700_000_000.0
DAY = 86400


def solana_security(**overrides):
    data = {
        "creatorAddress": "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
        "creatorPercentage": 0.1,
        "creationTime": NOW - 45 * DAY,
        "ownerAddress": None,
        "top10HolderPercent": 0.35,
        "mintAuthority": None,
        "freezeAuthority": None,
        "freezeable": None,
        "nonTransferable": False,
    }
    data.update(overrides)
    return data


def solana_overview(**overrides):
    data = {
        "address": "So11111111111111111111111111111111111111112",
        "liquidity": 152340.75,
        "extensions": {"twitter": "https://twitter.com/example", "website": None},
    }
    data.update(overrides)
    return data


def birdeye(session=None, api_key="test-key"):
    return BirdeyeProvider(
        BirdeyeConfig(api_key=api_key),
        session=session,
        wall_clock=lambda: NOW,
    )


def patch_payloads(provider, security=None, overview=None):
    """Route _get_json by endpoint path."""
    payloads = {
        BirdeyeProvider.SECURITY_PATH: security,
        BirdeyeProvider.OVERVIEW_PATH: overview,
    }

    async def fake_get_json(path, params=None, headers=None, token_id=None):
        return payloads[path]

    provider._get_json = AsyncMock(side_effect=fake_get_json)
    return provider._get_json


def fake_session(status=200, json_data=None, headers=None, text=""):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.request = MagicMock(return_value=ctx)
    session.close = AsyncMock()
    return session


def routed_session(data_by_path, gate=None):
    """Fake session answering each endpoint with its own payload."""

    def request(method, url, params=None, headers=None):
        path = url[url.index("/defi/"):]

        async def enter(*args):
            if gate is not None:
                await gate.wait()
            response = MagicMock()
            response.status = 200
            response.headers = {}
            response.json = AsyncMock(return_value={"success": True, "data": data_by_path[path]})
            return response

        ctx = MagicMock()
        ctx.__aenter__ = enter
        ctx.__aexit__ = AsyncMock(return_value=False)
        return ctx

    session = MagicMock()
    session.closed = False
    session.request = MagicMock(side_effect=request)
    session.close = AsyncMock()
    return session


# ============================================================
# NORMALIZATION TESTS
# ============================================================

class TestSolanaNormalization:
    """Tests for the Solana token_security mapping."""

    def test_revoked_authorities(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security())

        assert info["mint_authority_revoked"] is True
        assert info["freeze_authority_revoked"] is True
        assert info["is_honeypot"] is False
        assert info["ownership_renounced"] is True
        assert info["holder_concentration_top10_pct"] == Decimal("35")

    def test_active_authorities(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(
            mintAuthority="8Kag8CqNdCX55s4A5W4iraS71h6mv6uTHqsJbexdrrZm",
            freezeAuthority="8Kag8CqNdCX55s4A5W4iraS71h6mv6uTHqsJbexdrrZm",
            ownerAddress="8Kag8CqNdCX55s4A5W4iraS71h6mv6uTHqsJbexdrrZm",
        ))

        assert info["mint_authority_revoked"] is False
        assert info["freeze_authority_revoked"] is False
        assert info["ownership_renounced"] is False

    def test_freezeable_overrides_authority(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(
            freezeAuthority="8Kag8CqNdCX55s4A5W4iraS71h6mv6uTHqsJbexdrrZm",
            freezeable=False,
        ))
        assert info["freeze_authority_revoked"] is True

    def test_non_transferable_is_honeypot(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(nonTransferable=True))
        assert info["is_honeypot"] is True

    def test_missing_fields_are_unknown(self):
        info = BirdeyeProvider.normalize_solana_security({})

        assert all(value is None for value in info.values())

    def test_fraction_is_clamped(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(top10HolderPercent=1.7))
        assert info["holder_concentration_top10_pct"] == Decimal("100")

    def test_creator_share_is_top_holder(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(creatorPercentage=0.3))
        assert info["top_holder_pct"] == Decimal("30")

    def test_token2022_extensions(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security(
            isToken2022=True,
            transferFeeEnable=True,
            mutableMetadata=False,
        ))

        assert info["is_token2022"] is True
        assert info["has_transfer_fee"] is True
        assert info["mutable_metadata"] is False
        assert info["non_transferable"] is False

    def test_token2022_extensions_absent(self):
        info = BirdeyeProvider.normalize_solana_security(solana_security())

        assert info["is_token2022"] is None
        assert info["has_transfer_fee"] is None
        assert info["mutable_metadata"] is None


class TestEvmNormalization:
    """Tests for the EVM token_security mapping."""

    def test_flags_and_holders(self):
        info = BirdeyeProvider.normalize_evm_security({
            "is_honeypot": "0",
            "is_mintable": "1",
            "transfer_pausable": "0",
            "owner_address": "0x0000000000000000000000000000000000000000",
            "holders": [
                {"address": "0xa", "percent": "0.2"},
                {"address": "0xb", "percent": "0.15"},
            ],
        })

        assert info["is_honeypot"] is False
        assert info["mint_authority_revoked"] is False
        assert info["freeze_authority_revoked"] is True
        assert info["ownership_renounced"] is True
        assert info["holder_concentration_top10_pct"] == Decimal("35")
        assert info["top_holder_pct"] == Decimal("20")
        assert info["is_token2022"] is None

    def test_honeypot_and_owner(self):
        info = BirdeyeProvider.normalize_evm_security({
            "is_honeypot": "1",
            "owner_address": "0x1234567890abcdef1234567890abcdef12345678",
        })

        assert info["is_honeypot"] is True
        assert info["ownership_renounced"] is False
        assert info["mint_authority_revoked"] is None
        assert info["holder_concentration_top10_pct"] is None


class TestLpLockEstimate:
    """Tests for estimate_lp_lock."""

    def test_creator_share_leaves_lock_unknown(self):
        assert BirdeyeProvider.estimate_lp_lock({"creatorPercentage": 0.1}) == (None, Decimal("90"))

    def test_creator_holds_everything(self):
        assert BirdeyeProvider.estimate_lp_lock({"creatorPercentage": 1.0}) == (None, Decimal("0"))

    def test_lock_info_wins(self):
        security = {"creatorPercentage": 0.1, "lockInfo": {"lockedPercent": 75}}
        assert BirdeyeProvider.estimate_lp_lock(security) == (True, Decimal("75"))

    def test_evm_lp_holders(self):
        security = {"lp_holders": [
            {"percent": "0.6", "is_locked": 1},
            {"percent": "0.3", "is_locked": 0},
        ]}
        assert BirdeyeProvider.estimate_lp_lock(security) == (True, Decimal("60"))

    def test_unknown(self):
        assert BirdeyeProvider.estimate_lp_lock({}) == (None, None)


class TestCredibilitySignals:
    """Tests for token age and social presence."""

    def test_token_age_from_seconds(self):
        assert birdeye().token_age_days(NOW - 10 * DAY) == 10

    def test_token_age_from_milliseconds(self):
        assert birdeye().token_age_days((NOW - 10 * DAY) * 1000) == 10

    def test_token_age_partial_day_floors(self):
        assert birdeye().token_age_days(NOW - DAY + 60) == 0

    @pytest.mark.parametrize("value", [None, 0, "garbage"])
    def test_token_age_unknown(self, value):
        assert birdeye().token_age_days(value) is None

    def test_future_creation_time_is_zero(self):
        assert birdeye().token_age_days(NOW + DAY) == 0

    def test_social_presence(self):
        assert BirdeyeProvider.parse_social_presence(solana_overview()) is True
        assert BirdeyeProvider.parse_social_presence({"extensions": {}}) is False
        assert BirdeyeProvider.parse_social_presence({"extensions": None}) is False
        assert BirdeyeProvider.parse_social_presence({}) is None


# ============================================================
# CONTRACT TESTS
# ============================================================

class TestBirdeyeContracts:
    """Tests for fetch_security_info / fetch_overview."""

    @pytest.mark.asyncio
    async def test_fetch_security_info(self):
        provider = birdeye()
        patch_payloads(
            provider,
            security={"success": True, "data": solana_security()},
            overview={"success": True, "data": solana_overview()},
        )

        info = await provider.fetch_security_info(TokenIdentifier.parse(SOL_TOKEN))

        assert info.mint_authority_revoked is True
        assert info.is_honeypot is False
        assert info.holder_concentration_top10_pct == Decimal("35")
        assert info.has_audit is None
        assert info.has_social_media is True
        assert info.source_name == "birdeye"

    @pytest.mark.asyncio
    async def test_quick_skips_overview(self):
        provider = birdeye()
        get_json = patch_payloads(provider, security={"success": True, "data": solana_security()})

        info = await provider.fetch_security_info(
            TokenIdentifier.parse(SOL_TOKEN),
            include_credibility=False,
        )

        assert get_json.await_count == 1
        assert info.has_social_media is None

    @pytest.mark.asyncio
    async def test_fetch_overview(self):
        provider = birdeye()
        patch_payloads(
            provider,
            security={"success": True, "data": solana_security()},
            overview={"success": True, "data": solana_overview()},
        )

        overview = await provider.fetch_overview(TokenIdentifier.parse(SOL_TOKEN))

        assert overview.liquidity_usd == Decimal("152340.75")
        assert overview.lp_locked is None
        assert overview.lp_locked_percentage == Decimal("90")
        assert overview.token_age_days == 45

    @pytest.mark.asyncio
    async def test_creator_estimate_scores_as_not_locked(self):
        provider = birdeye()
        patch_payloads(
            provider,
            security={"success": True, "data": solana_security()},
            overview={"success": True, "data": solana_overview()},
        )
        token_id = TokenIdentifier.parse(SOL_TOKEN)

        factors = RiskFactors.from_provider_data(
            await provider.fetch_security_info(token_id),
            await provider.fetch_overview(token_id),
        )
        outcome = ScoringEngine().score(factors)

        assert outcome.breakdown["lp_lock"] == 0
        assert "LP not locked" in outcome.flags

    @pytest.mark.asyncio
    async def test_security_info_carries_details(self):
        provider = birdeye()
        patch_payloads(
            provider,
            security={"success": True, "data": solana_security(
                isToken2022=True,
                transferFeeEnable=False,
                mutableMetadata=True,
            )},
            overview={"success": True, "data": solana_overview()},
        )

        info = await provider.fetch_security_info(TokenIdentifier.parse(SOL_TOKEN))

        assert info.top_holder_pct == Decimal("10")
        assert info.is_token2022 is True
        assert info.has_transfer_fee is False
        assert info.mutable_metadata is True
        assert info.non_transferable is False

    @pytest.mark.asyncio
    async def test_evm_token_uses_evm_shape(self):
        provider = birdeye()
        patch_payloads(provider, security={"success": True, "data": {
            "is_honeypot": "1",
            "is_mintable": "0",
        }})

        info = await provider.fetch_security_info(
            TokenIdentifier.parse(EVM_TOKEN),
            include_credibility=False,
        )

        assert info.is_honeypot is True
        assert info.mint_authority_revoked is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"success": False, "message": "Not found"},
        {"success": True, "data": None},
        {"success": True, "data": {}},
    ])
    async def test_unknown_token_is_not_found(self, payload):
        provider = birdeye()
        patch_payloads(provider, security=payload)

        with pytest.raises(ProviderError) as exc_info:
            await provider.fetch_security_info(TokenIdentifier.parse(SOL_TOKEN))

        assert exc_info.value.kind == ProviderErrorKind.NOT_FOUND
        assert provider.get_incidents()[-1].kind == "not_found"


# ============================================================
# HTTP TESTS
# ============================================================

class TestHttpErrorMapping:
    """Tests for status and transport error mapping."""

    @pytest.mark.asyncio
    async def test_success_sends_chain_and_key_headers(self):
        session = fake_session(json_data={"success": True, "data": solana_overview()})
        provider = birdeye(session)

        overview = await provider._fetch_data(
            BirdeyeProvider.OVERVIEW_PATH,
            TokenIdentifier.parse(SOL_TOKEN),
        )

        assert overview["liquidity"] == 152340.75
        _, kwargs = session.request.call_args
        assert kwargs["headers"] == {"x-chain": "solana", "X-API-KEY": "test-key"}
        assert kwargs["params"] == {"address": "So11111111111111111111111111111111111111112"}
        assert provider.get_health().status == ProviderStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_no_key_header_without_key(self):
        session = fake_session(json_data={"success": True, "data": solana_overview()})
        provider = birdeye(session, api_key=None)

        await provider._fetch_data(BirdeyeProvider.OVERVIEW_PATH, TokenIdentifier.parse(SOL_TOKEN))

        _, kwargs = session.request.call_args
        assert "X-API-KEY" not in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        provider = birdeye(fake_session(status=429, headers={"Retry-After": "7"}))

        with pytest.raises(ProviderError) as exc_info:
            await provider._get_json("/defi/token_overview")

        assert exc_info.value.kind == ProviderErrorKind.RATE_LIMITED
        assert exc_info.value.retry_after_seconds == 7
        assert exc_info.value.retryable
        assert provider.get_health().status == ProviderStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_not_found_status(self):
        provider = birdeye(fake_session(status=404))

        with pytest.raises(ProviderError) as exc_info:
            await provider._get_json("/defi/token_overview")

        assert exc_info.value.kind == ProviderErrorKind.NOT_FOUND
        assert provider.get_health().consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_server_error(self):
        provider = birdeye(fake_session(status=503, text="maintenance"))

        with pytest.raises(ProviderError) as exc_info:
            await provider._get_json("/defi/token_overview")

        assert exc_info.value.kind == ProviderErrorKind.UPSTREAM
        assert exc_info.value.status_code == 503
        assert exc_info.value.context["response_body"] == "maintenance"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        session = fake_session()
        session.request.side_effect = aiohttp.ClientConnectionError("refused")
        provider = birdeye(session)

        with pytest.raises(ProviderError) as exc_info:
            await provider._get_json("/defi/token_overview")

        assert exc_info.value.kind == ProviderErrorKind.UPSTREAM
        assert isinstance(exc_info.value.original_error, aiohttp.ClientConnectionError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = fake_session()
        session.request.side_effect = asyncio.TimeoutError()
        provider = birdeye(session)

        with pytest.raises(ProviderError) as exc_info:
            await provider._get_json("/defi/token_overview")

        assert exc_info.value.kind == ProviderErrorKind.TIMEOUT


class TestHealthAndCaching:
    """Tests for health tracking, incidents and the response cache."""

    @pytest.mark.asyncio
    async def test_degraded_after_repeated_failures(self):
        provider = birdeye(fake_session(status=500))

        for _ in range(BirdeyeProvider.DEGRADED_THRESHOLD):
            with pytest.raises(ProviderError):
                await provider._get_json("/defi/token_overview")

        health = provider.get_health()
        assert health.status == ProviderStatus.DEGRADED
        assert health.error_count == 3
        assert not provider.is_healthy()
        assert len(provider.get_incidents()) == 3

    @pytest.mark.asyncio
    async def test_unavailable_after_more_failures(self):
        provider = birdeye(fake_session(status=500))

        for _ in range(BirdeyeProvider.UNAVAILABLE_THRESHOLD):
            with pytest.raises(ProviderError):
                await provider._get_json("/defi/token_overview")

        assert provider.get_health().status == ProviderStatus.UNAVAILABLE
        assert not provider.get_health().is_usable()

    @pytest.mark.asyncio
    async def test_response_cache_avoids_repeat_request(self):
        session = fake_session(json_data={"success": True, "data": solana_overview()})
        provider = birdeye(session)

        await provider._get_json("/defi/token_overview", params={"address": "abc"})
        await provider._get_json("/defi/token_overview", params={"address": "abc"})

        assert session.request.call_count == 1

        provider.clear_response_cache()
        await provider._get_json("/defi/token_overview", params={"address": "abc"})
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_request(self):
        session = fake_session(json_data={"success": True, "data": solana_overview()})
        provider = birdeye(session)

        first, second = await asyncio.gather(
            provider._get_json("/defi/token_overview", params={"address": "abc"}),
            provider._get_json("/defi/token_overview", params={"address": "abc"}),
        )

        assert first == second
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_reader_leaves_shared_request_running(self):
        release = asyncio.Event()
        session = routed_session({"/defi/token_overview": solana_overview()}, gate=release)
        provider = birdeye(session)

        first = asyncio.ensure_future(provider._get_json("/defi/token_overview"))
        second = asyncio.ensure_future(provider._get_json("/defi/token_overview"))
        await asyncio.sleep(0)
        first.cancel()
        release.set()

        payload = await second

        assert first.cancelled()
        assert payload["data"]["liquidity"] == 152340.75
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_normal_screen_reads_each_endpoint_once(self, config):
        session = routed_session({
            BirdeyeProvider.SECURITY_PATH: solana_security(),
            BirdeyeProvider.OVERVIEW_PATH: solana_overview(),
        })
        provider = birdeye(session)
        screener = TokenScreener(provider, provider, config=config)

        result = await screener.screen(SOL_TOKEN)

        assert result.details["liquidityUsd"] == "152340.75"
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = fake_session()
        provider = birdeye(session)

        await provider.close()

        session.close.assert_not_awaited()


# ============================================================
# IN-MEMORY PROVIDER TESTS
# ============================================================

class TestInMemoryProvider:
    """Tests for the in-memory provider."""

    @pytest.mark.asyncio
    async def test_serves_fixtures(self):
        provider = InMemoryProvider()
        provider.add_token(SOL_TOKEN, safe_security(), safe_overview())
        token = TokenIdentifier.parse(SOL_TOKEN)

        info = await provider.fetch_security_info(token)
        overview = await provider.fetch_overview(token)

        assert info == safe_security()
        assert overview == safe_overview()
        assert provider.total_calls == 2
        assert provider.credibility_requests == 1

    @pytest.mark.asyncio
    async def test_quick_hides_credibility_fields(self):
        provider = InMemoryProvider()
        provider.add_token(SOL_TOKEN, safe_security(has_audit=True), safe_overview())

        info = await provider.fetch_security_info(
            TokenIdentifier.parse(SOL_TOKEN),
            include_credibility=False,
        )

        assert info.has_audit is None
        assert info.has_social_media is None
        assert info.mint_authority_revoked is True
        assert provider.credibility_requests == 0

    @pytest.mark.asyncio
    async def test_unknown_and_removed_tokens(self):
        provider = InMemoryProvider()
        provider.add_token(SOL_TOKEN)
        provider.remove_token(SOL_TOKEN)

        with pytest.raises(ProviderError) as exc_info:
            await provider.fetch_overview(TokenIdentifier.parse(SOL_TOKEN))

        assert exc_info.value.kind == ProviderErrorKind.NOT_FOUND
        assert exc_info.value.provider_name == "memory"

    @pytest.mark.asyncio
    async def test_injected_failure_and_reset(self):
        provider = InMemoryProvider()
        provider.add_token(SOL_TOKEN, safe_security(), safe_overview())
        provider.fail_security(SOL_TOKEN, ProviderError("boom", kind=ProviderErrorKind.UPSTREAM))
        token = TokenIdentifier.parse(SOL_TOKEN)

        with pytest.raises(ProviderError):
            await provider.fetch_security_info(token)

        provider.clear_failures()
        provider.reset_counters()
        await provider.fetch_security_info(token)

        assert provider.security_calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_is_counted(self):
        provider = InMemoryProvider(overview_latency=1.0)
        provider.add_token(SOL_TOKEN, safe_security(), safe_overview())

        task = asyncio.ensure_future(provider.fetch_overview(TokenIdentifier.parse(SOL_TOKEN)))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert provider.canceled_calls == 1
