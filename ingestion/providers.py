"""
Holder snapshot providers.

Every provider maps its own response shape onto the canonical HolderRecord and
reports failure through a ProviderResult instead of raising, so the fallback
chain can move on to the next provider.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
import backoff

from logic.errors import ProviderError
from .config import TrackerConfig, DEFAULT_CONFIG
from .events import HolderRecord, _to_int, to_base_units

logger = logging.getLogger(__name__)

GECKOTERMINAL_BASE_URL = "https://api.geckoterminal.com/api/v2/networks/solana"
BIRDEYE_BASE_URL = "https://public-api.birdeye.so"
SOLSCAN_BASE_URL = "https://api.solscan.io"
SOLSCAN_V2_BASE_URL = "https://api-v2.solscan.io/v2"

USER_AGENT = "HolderWatch/1.0"

# Transport-level retries per provider call (HTTP errors are not retried)
MAX_TRIES = 2

TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


@dataclass
class ProviderResult:
    """Tagged outcome of a single provider attempt."""

    provider: str
    holders: List[HolderRecord] = field(default_factory=list)
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.holders

    @classmethod
    def success(cls, provider: str, holders: List[HolderRecord]) -> "ProviderResult":
        return cls(provider=provider, holders=holders)

    @classmethod
    def failure(cls, provider: str, error: ProviderError) -> "ProviderResult":
        return cls(provider=provider, error=error)


class HolderProvider:
    """
    Base class for a snapshot provider.

    Subclasses implement ``_fetch`` and may raise freely; ``fetch_snapshot``
    converts anything that goes wrong into a failed ProviderResult.
    """

    name = "provider"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession],
        config: TrackerConfig = DEFAULT_CONFIG,
    ):
        self.session = session
        self.config = config

    @property
    def enabled(self) -> bool:
        """Whether this provider can run with the current configuration."""
        return True

    async def fetch_snapshot(self, mint: str) -> ProviderResult:
        """Fetch holders of ``mint``; never raises."""
        try:
            records = await self._fetch(mint)
        except ProviderError as e:
            return ProviderResult.failure(self.name, e)
        except asyncio.TimeoutError:
            return ProviderResult.failure(
                self.name,
                ProviderError(self.name, f"timed out after {self.config.provider_timeout_seconds}s"),
            )
        except (aiohttp.ClientError, ValueError, KeyError, TypeError, AttributeError) as e:
            return ProviderResult.failure(self.name, ProviderError(self.name, str(e) or type(e).__name__))
        except Exception as e:
            logger.error(f"Unexpected {type(e).__name__} in {self.name}: {e}")
            return ProviderResult.failure(self.name, ProviderError(self.name, f"{type(e).__name__}: {e}"))

        holders = [r for r in records if r.is_valid]
        return ProviderResult.success(self.name, holders)

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        raise NotImplementedError

    @backoff.on_exception(
        backoff.expo,
        TRANSIENT_ERRORS,
        max_tries=MAX_TRIES,
        on_backoff=lambda details: logger.debug(
            f"Provider call retrying... attempt {details['tries']}"
        ),
    )
    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        """Timed HTTP call returning decoded JSON; non-200 raises ProviderError."""
        if self.session is None:
            raise ProviderError(self.name, "no HTTP session")

        timeout = aiohttp.ClientTimeout(total=self.config.provider_timeout_seconds)
        async with self.session.request(method, url, timeout=timeout, **kwargs) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ProviderError(
                    self.name,
                    f"HTTP {response.status}: {error_text[:200]}",
                    status=response.status,
                )
            return await response.json(content_type=None)

    async def _rpc(self, url: str, request_id: str, method: str, params: Any) -> Any:
        """JSON-RPC 2.0 call returning ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }
        data = await self._request_json(
            "POST", url, json=payload, headers={"Content-Type": "application/json"}
        )
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"unexpected {method} response")
        if data.get("error"):
            raise ProviderError(self.name, f"{method} error: {data['error']}")
        return data.get("result")


# ============================================================================
# Pool resolution
# ============================================================================

class PoolResolver(HolderProvider):
    """Resolves a GeckoTerminal pool address to its base-token mint."""

    name = "geckoterminal-pool"

    async def resolve(self, address: str) -> Optional[str]:
        """Return the pool's base-token mint, or None if ``address`` is not a pool."""
        logger.info(f"🔍 Checking if {address[:16]}... is a pool")
        try:
            data = await self._request_json(
                "GET",
                f"{GECKOTERMINAL_BASE_URL}/pools/{address}",
                headers={"Accept": "application/json"},
            )
            token_id = (
                ((((data or {}).get("data") or {}).get("relationships") or {})
                 .get("base_token") or {}).get("data") or {}
            ).get("id")
        except ProviderError as e:
            logger.debug(f"Not a pool: {e}")
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, AttributeError, TypeError) as e:
            logger.warning(f"Pool lookup failed: {e!r}")
            return None

        if not isinstance(token_id, str) or not token_id:
            return None

        mint = token_id.replace("solana_", "", 1)
        logger.info(f"✅ Pool detected! Base token mint: {mint}")
        return mint


# ============================================================================
# Holder listing providers
# ============================================================================

class BirdeyeProvider(HolderProvider):
    """Birdeye ``defi/token_holder`` listing."""

    name = "birdeye"

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        headers = {"Accept": "application/json", "x-chain": "solana"}
        if self.config.birdeye_api_key:
            headers["X-API-KEY"] = self.config.birdeye_api_key

        data = await self._request_json(
            "GET",
            f"{BIRDEYE_BASE_URL}/defi/token_holder",
            params={"address": mint, "offset": 0, "limit": self.config.snapshot_page_size},
            headers=headers,
        )
        items = ((data or {}).get("data") or {}).get("items")
        if not isinstance(items, list):
            return []

        return [
            HolderRecord(
                address=item.get("owner") or item.get("holderAddress") or "",
                balance=self._base_units(item),
                account_ref=item.get("tokenAccount") or item.get("address"),
            )
            for item in items
            if isinstance(item, dict)
        ]

    @staticmethod
    def _base_units(item: dict) -> int:
        ui_amount = item.get("uiAmount")
        if ui_amount:
            return to_base_units(ui_amount, item.get("decimals") or 9)
        return _to_int(item.get("amount"))


class SolscanProvider(HolderProvider):
    """Solscan public ``token/holders`` listing."""

    name = "solscan"

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        data = await self._request_json(
            "GET",
            f"{SOLSCAN_BASE_URL}/token/holders",
            params={"token": mint, "offset": 0, "size": self.config.snapshot_page_size},
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        items = (data or {}).get("data")
        if not isinstance(items, list):
            return []

        return [
            HolderRecord(
                address=item.get("owner") or item.get("address") or "",
                balance=_to_int(item.get("amount")),
                account_ref=item.get("address"),
            )
            for item in items
            if isinstance(item, dict)
        ]


class SolscanV2Provider(HolderProvider):
    """Solscan v2 ``token/holders`` listing."""

    name = "solscan-v2"

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        data = await self._request_json(
            "GET",
            f"{SOLSCAN_V2_BASE_URL}/token/holders",
            params={"token": mint, "page": 1, "page_size": self.config.snapshot_page_size},
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        body = (data or {}).get("data") or {}
        items = body.get("items") or body.get("result") or []
        if not isinstance(items, list):
            return []

        return [
            HolderRecord(
                address=item.get("owner") or item.get("address") or "",
                balance=_to_int(item.get("amount")) or _to_int(item.get("balance")),
                account_ref=item.get("token_account") or item.get("address"),
            )
            for item in items
            if isinstance(item, dict)
        ]


class GeckoTerminalTokenInfo(HolderProvider):
    """
    GeckoTerminal token lookup.

    GeckoTerminal has no holder listing; this step only records the token's
    metadata so the status surface can show it. It always yields no holders.
    """

    name = "geckoterminal-token"

    def __init__(self, session, config: TrackerConfig = DEFAULT_CONFIG):
        super().__init__(session, config)
        self.token_info: Dict[str, Any] = {}

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        data = await self._request_json(
            "GET",
            f"{GECKOTERMINAL_BASE_URL}/tokens/{mint}",
            headers={"Accept": "application/json"},
        )
        attributes = ((data or {}).get("data") or {}).get("attributes")
        if isinstance(attributes, dict):
            self.token_info = {
                "address": attributes.get("address", mint),
                "name": attributes.get("name"),
                "symbol": attributes.get("symbol"),
                "decimals": attributes.get("decimals"),
            }
            logger.info(f"📊 Token found on GeckoTerminal: {attributes.get('name')}")
        return []


class HeliusTokenAccountsProvider(HolderProvider):
    """Helius DAS ``getTokenAccounts``; needs a Helius API key."""

    name = "helius"

    @property
    def enabled(self) -> bool:
        return bool(self.config.helius_api_key)

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        result = await self._rpc(
            self.config.helius_rpc_url,
            "holder-fetch",
            "getTokenAccounts",
            {"mint": mint, "limit": self.config.helius_page_limit},
        )
        accounts = (result or {}).get("token_accounts")
        if not isinstance(accounts, list):
            return []

        return [
            HolderRecord(
                address=acc.get("owner") or "",
                balance=_to_int(acc.get("amount")),
                account_ref=acc.get("address"),
            )
            for acc in accounts
            if isinstance(acc, dict)
        ]


class RpcLargestAccountsProvider(HolderProvider):
    """
    Last resort: ``getTokenLargestAccounts`` followed by a jsonParsed
    ``getMultipleAccounts`` to resolve each token account's owner.
    """

    name = "rpc-largest-accounts"

    async def _fetch(self, mint: str) -> List[HolderRecord]:
        url = self.config.rpc_url
        largest = await self._rpc(url, "largest-accounts", "getTokenLargestAccounts", [mint])
        values = (largest or {}).get("value") or []
        if not values:
            return []

        token_accounts = [v.get("address") for v in values]
        accounts = await self._rpc(
            url,
            "get-accounts",
            "getMultipleAccounts",
            [token_accounts, {"encoding": "jsonParsed"}],
        )
        infos = (accounts or {}).get("value") or []

        records = []
        for i, acc in enumerate(infos):
            if i >= len(values):
                break
            owner = (((acc or {}).get("data") or {}).get("parsed") or {}).get("info", {}).get("owner")
            if not owner:
                continue
            records.append(HolderRecord(
                address=owner,
                balance=_to_int(values[i].get("amount")),
                account_ref=token_accounts[i],
            ))
        return records


def build_default_chain(
    session: aiohttp.ClientSession,
    config: TrackerConfig = DEFAULT_CONFIG,
) -> List[HolderProvider]:
    """The standard provider order, cheapest and freshest first."""
    return [
        BirdeyeProvider(session, config),
        SolscanProvider(session, config),
        SolscanV2Provider(session, config),
        GeckoTerminalTokenInfo(session, config),
        HeliusTokenAccountsProvider(session, config),
        RpcLargestAccountsProvider(session, config),
    ]
