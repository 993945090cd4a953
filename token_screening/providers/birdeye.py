"""
Birdeye Provider - Token security and overview data.

============================================================
ENDPOINTS
============================================================
- GET /defi/token_security   authorities, holders, creator share
- GET /defi/token_overview   liquidity, social extensions

Headers: X-API-KEY, x-chain (solana, ethereum, bsc, ...)

============================================================
NORMALIZATION
============================================================
- top10HolderPercent and creatorPercentage are 0-1 fractions
  and are multiplied by 100
- nonTransferable tokens cannot be sold: treated as honeypot
- mintAuthority / freezeAuthority present and null: revoked;
  freezeable == false also means no freeze authority
- LP lock: lockInfo or lp_holders when present. Otherwise
  100 - creator% is kept as an estimate but the lock itself
  stays unknown and scores as not locked
- token age from creationTime (unix seconds)
- social presence from overview extensions
- audits are not reported: has_audit stays None
- Token-2022 extensions (isToken2022, transferFeeEnable,
  mutableMetadata) and creator% as the top-holder share are
  carried into the result details

EVM chains return the GoPlus-style shape (is_honeypot "0"/"1",
is_mintable, owner_address, holders, lp_holders) which is
normalized separately.

A response with success == false or data == null means the
token is unknown to Birdeye (NOT_FOUND).

============================================================
"""

import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from ..config import BirdeyeConfig
from ..exceptions import ProviderError, ProviderErrorKind
from ..types import SecurityInfo, TokenIdentifier, TokenOverview, to_decimal
from .base import BaseHttpProvider, OverviewProvider, SecurityProvider


logger = logging.getLogger(__name__)


_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_SECONDS_PER_DAY = 86400

_SOCIAL_KEYS = ("website", "twitter", "telegram", "discord", "medium")
_NULL_EVM_OWNERS = ("", "0x0000000000000000000000000000000000000000")


def _fraction_to_pct(value: Any) -> Optional[Decimal]:
    fraction = to_decimal(value)
    if fraction is None:
        return None
    return max(_ZERO, min(_HUNDRED, fraction * _HUNDRED))


def _flag(value: Any) -> Optional[bool]:
    """Parse "0"/"1", 0/1 and booleans; None when absent or unparseable."""
    if isinstance(value, bool):
        return value
    if value in (1, "1"):
        return True
    if value in (0, "0"):
        return False
    return None


class BirdeyeProvider(BaseHttpProvider, SecurityProvider, OverviewProvider):
    """
    Birdeye public API adapter.

    Implements both provider contracts. The security and overview
    calls each read both endpoints where a field needs it; concurrent
    reads of the same endpoint share one request and later reads
    come from the response cache.
    """

    SECURITY_PATH = "/defi/token_security"
    OVERVIEW_PATH = "/defi/token_overview"

    def __init__(
        self,
        config: Optional[BirdeyeConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or BirdeyeConfig()
        super().__init__(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            timeout=self.config.request_timeout_seconds,
            response_cache_ttl=self.config.response_cache_ttl_seconds,
            session=session,
            clock=clock,
        )
        self._wall_clock = wall_clock

        if not self._api_key:
            logger.warning(f"[{self.name}] No API key configured, set BIRDEYE_API_KEY")

    @property
    def name(self) -> str:
        return "birdeye"

    def _chain_headers(self, token_id: TokenIdentifier) -> Dict[str, str]:
        headers = {"x-chain": token_id.chain.value}
        if self._api_key:
            headers["X-API-KEY"] = self._api_key
        return headers

    async def _fetch_data(self, path: str, token_id: TokenIdentifier) -> Dict[str, Any]:
        payload = await self._get_json(
            path,
            params={"address": token_id.address},
            headers=self._chain_headers(token_id),
            token_id=token_id,
        )

        if not isinstance(payload, dict) or payload.get("success") is False or not payload.get("data"):
            error = ProviderError(
                "Token not found",
                kind=ProviderErrorKind.NOT_FOUND,
                provider_name=self.name,
                token_id=str(token_id),
                context={"endpoint": path},
            )
            self._log_incident(error, endpoint=path)
            raise error

        data = payload["data"]
        if not isinstance(data, dict):
            raise ProviderError(
                f"Unexpected payload shape from {path}",
                kind=ProviderErrorKind.UPSTREAM,
                provider_name=self.name,
                token_id=str(token_id),
            )
        return data

    # ─────────────────────────────────────────────────────────────
    # SecurityProvider
    # ─────────────────────────────────────────────────────────────

    async def fetch_security_info(
        self,
        token_id: TokenIdentifier,
        *,
        include_credibility: bool = True,
    ) -> SecurityInfo:
        data = await self._fetch_data(self.SECURITY_PATH, token_id)

        if "is_honeypot" in data or token_id.chain.is_evm:
            info = self.normalize_evm_security(data)
        else:
            info = self.normalize_solana_security(data)

        has_social_media = None
        if include_credibility:
            overview = await self._fetch_data(self.OVERVIEW_PATH, token_id)
            has_social_media = self.parse_social_presence(overview)

        return SecurityInfo(
            mint_authority_revoked=info["mint_authority_revoked"],
            freeze_authority_revoked=info["freeze_authority_revoked"],
            is_honeypot=info["is_honeypot"],
            ownership_renounced=info["ownership_renounced"],
            holder_concentration_top10_pct=info["holder_concentration_top10_pct"],
            has_audit=None,
            has_social_media=has_social_media,
            top_holder_pct=info["top_holder_pct"],
            is_token2022=info["is_token2022"],
            has_transfer_fee=info["has_transfer_fee"],
            non_transferable=info["non_transferable"],
            mutable_metadata=info["mutable_metadata"],
            source_name=self.name,
        )

    @staticmethod
    def normalize_solana_security(data: Dict[str, Any]) -> Dict[str, Any]:
        """Map a Solana token_security payload to SecurityInfo fields."""
        mint_revoked = None
        if "mintAuthority" in data:
            mint_revoked = data["mintAuthority"] is None

        freeze_revoked = None
        if "freezeAuthority" in data:
            freeze_revoked = data["freezeAuthority"] is None
        if data.get("freezeable") is False:
            freeze_revoked = True
        elif data.get("freezeable") is True:
            freeze_revoked = False

        non_transferable = data.get("nonTransferable")
        is_honeypot = non_transferable if isinstance(non_transferable, bool) else None

        ownership_renounced = None
        if "ownerAddress" in data:
            ownership_renounced = not data["ownerAddress"]

        return {
            "mint_authority_revoked": mint_revoked,
            "freeze_authority_revoked": freeze_revoked,
            "is_honeypot": is_honeypot,
            "ownership_renounced": ownership_renounced,
            "holder_concentration_top10_pct": _fraction_to_pct(data.get("top10HolderPercent")),
            # Creator share stands in for the single largest holder
            "top_holder_pct": _fraction_to_pct(data.get("creatorPercentage")),
            "is_token2022": _flag(data.get("isToken2022")),
            "has_transfer_fee": _flag(data.get("transferFeeEnable")),
            "non_transferable": _flag(non_transferable),
            "mutable_metadata": _flag(data.get("mutableMetadata")),
        }

    @staticmethod
    def normalize_evm_security(data: Dict[str, Any]) -> Dict[str, Any]:
        """Map an EVM (GoPlus-style) token_security payload to SecurityInfo fields."""
        is_mintable = _flag(data.get("is_mintable"))
        pausable = _flag(data.get("transfer_pausable"))

        ownership_renounced = None
        if "owner_address" in data:
            owner = data["owner_address"] or ""
            ownership_renounced = owner.lower() in _NULL_EVM_OWNERS

        top10 = None
        top_holder = None
        holders = data.get("holders")
        if isinstance(holders, list) and holders:
            shares = [to_decimal(h.get("percent")) for h in holders[:10] if isinstance(h, dict)]
            if shares and all(s is not None for s in shares):
                top10 = _fraction_to_pct(sum(shares))
                top_holder = _fraction_to_pct(max(shares))

        return {
            "mint_authority_revoked": None if is_mintable is None else not is_mintable,
            "freeze_authority_revoked": None if pausable is None else not pausable,
            "is_honeypot": _flag(data.get("is_honeypot")),
            "ownership_renounced": ownership_renounced,
            "holder_concentration_top10_pct": top10,
            "top_holder_pct": top_holder,
            "is_token2022": None,
            "has_transfer_fee": None,
            "non_transferable": None,
            "mutable_metadata": None,
        }

    @staticmethod
    def parse_social_presence(overview: Dict[str, Any]) -> Optional[bool]:
        if "extensions" not in overview:
            return None
        extensions = overview["extensions"] or {}
        return any(extensions.get(key) for key in _SOCIAL_KEYS)

    # ─────────────────────────────────────────────────────────────
    # OverviewProvider
    # ─────────────────────────────────────────────────────────────

    async def fetch_overview(self, token_id: TokenIdentifier) -> TokenOverview:
        overview = await self._fetch_data(self.OVERVIEW_PATH, token_id)
        security = await self._fetch_data(self.SECURITY_PATH, token_id)

        lp_locked, lp_pct = self.estimate_lp_lock(security)

        return TokenOverview(
            liquidity_usd=to_decimal(overview.get("liquidity")),
            lp_locked=lp_locked,
            lp_locked_percentage=lp_pct,
            token_age_days=self.token_age_days(security.get("creationTime")),
            source_name=self.name,
        )

    @staticmethod
    def estimate_lp_lock(security: Dict[str, Any]) -> Tuple[Optional[bool], Optional[Decimal]]:
        """
        Return (lp_locked, lp_locked_percentage).

        lockInfo / lp_holders are authoritative. Without them, the
        locked share is estimated as 100 - creator%, an upper bound
        that proves nothing: lp_locked stays None.
        """
        lock_info = security.get("lockInfo")
        if isinstance(lock_info, dict):
            pct = to_decimal(lock_info.get("lockedPercent", lock_info.get("percent")))
            if pct is not None:
                pct = max(_ZERO, min(_HUNDRED, pct))
                return pct > _ZERO, pct

        lp_holders = security.get("lp_holders")
        if isinstance(lp_holders, list):
            locked = _ZERO
            for holder in lp_holders:
                if isinstance(holder, dict) and _flag(holder.get("is_locked")):
                    locked += to_decimal(holder.get("percent")) or _ZERO
            pct = max(_ZERO, min(_HUNDRED, locked * _HUNDRED))
            return pct > _ZERO, pct

        creator_pct = _fraction_to_pct(
            security.get("creatorPercentage", security.get("creator_percent"))
        )
        if creator_pct is None:
            return None, None
        return None, _HUNDRED - creator_pct

    def token_age_days(self, creation_time: Any) -> Optional[int]:
        created = to_decimal(creation_time)
        if created is None or created <= 0:
            return None
        # Millisecond timestamps
        if created > Decimal("1e12"):
            created = created / 1000
        age_seconds = Decimal(str(self._wall_clock())) - created
        return max(0, int(age_seconds // _SECONDS_PER_DAY))
