"""Holder Fetcher - resolves a tracked address to a holder snapshot."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from logic.errors import EmptyResultError
from .config import TrackerConfig, DEFAULT_CONFIG
from .events import HolderRecord
from .providers import (
    HolderProvider,
    PoolResolver,
    ProviderResult,
    GeckoTerminalTokenInfo,
    build_default_chain,
)

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of one pass over the provider chain."""

    holders: List[HolderRecord]
    token_mint: str
    pool_address: Optional[str] = None
    provider: Optional[str] = None
    attempts: List[ProviderResult] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.holders


def merge_by_owner(records: List[HolderRecord]) -> List[HolderRecord]:
    """
    Collapse multiple token accounts of one owner into a single record.

    Balances are summed; the account reference of the largest account is kept.
    The result is sorted by balance, descending.
    """
    merged: Dict[str, HolderRecord] = {}
    largest: Dict[str, int] = {}
    for record in records:
        existing = merged.get(record.address)
        if existing is None:
            merged[record.address] = record
            largest[record.address] = record.balance
            continue
        account_ref = existing.account_ref
        if record.balance > largest[record.address]:
            account_ref = record.account_ref
            largest[record.address] = record.balance
        merged[record.address] = HolderRecord(
            address=record.address,
            balance=existing.balance + record.balance,
            account_ref=account_ref,
        )
    return sorted(merged.values(), key=lambda r: r.balance, reverse=True)


class HolderFetcher:
    """
    Walks an ordered chain of holder providers until one returns holders.

    If the input address turns out to be a liquidity pool, the pool's base
    token mint is resolved first and the chain runs against that mint.
    Provider failures are logged and skipped; an exhausted chain yields an
    empty result rather than an error.

    Usage:
        async with HolderFetcher(config) as fetcher:
            result = await fetcher.fetch_holders(address)
    """

    def __init__(
        self,
        config: TrackerConfig = DEFAULT_CONFIG,
        session: Optional[aiohttp.ClientSession] = None,
        providers: Optional[List[HolderProvider]] = None,
        pool_resolver: Optional[PoolResolver] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Tracker configuration
            session: Optional aiohttp session (created on start if not provided)
            providers: Provider chain override (default chain if not provided)
            pool_resolver: Pool-to-mint resolver override
        """
        self.config = config
        self._session = session
        self._owns_session = session is None
        self.providers = providers
        self.pool_resolver = pool_resolver

    async def start(self) -> None:
        """Create the HTTP session and the default provider chain if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        if self.providers is None:
            self.providers = build_default_chain(self._session, self.config)
        if self.pool_resolver is None:
            self.pool_resolver = PoolResolver(self._session, self.config)

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def token_info(self) -> Dict[str, Any]:
        """Token metadata recorded by the GeckoTerminal lookup, if it ran."""
        for provider in self.providers or []:
            if isinstance(provider, GeckoTerminalTokenInfo) and provider.token_info:
                return provider.token_info
        return {}

    async def fetch_holders(self, address: str) -> FetchResult:
        """
        Resolve ``address`` (token mint or pool) to a holder snapshot.

        Args:
            address: Token mint or pool address

        Returns:
            FetchResult with holders sorted by balance, descending. Empty when
            every provider failed or came back empty.
        """
        if self.providers is None or self.pool_resolver is None:
            await self.start()

        logger.info(f"🔍 Fetching holders for: {address}")

        token_mint = address
        pool_address = None

        mint_from_pool = await self.pool_resolver.resolve(address)
        if mint_from_pool:
            logger.info(f"🔄 Switching from pool to token mint: {mint_from_pool}")
            pool_address = address
            token_mint = mint_from_pool

        attempts: List[ProviderResult] = []
        for provider in self.providers:
            if not provider.enabled:
                logger.debug(f"Skipping {provider.name} (not configured)")
                continue

            logger.info(f"Trying {provider.name}...")
            result = await provider.fetch_snapshot(token_mint)
            attempts.append(result)

            if not result.ok:
                logger.warning(f"{provider.name} failed: {result.error}")
                continue
            if result.is_empty:
                logger.info(f"{provider.name} returned no holders")
                continue

            holders = merge_by_owner(result.holders)
            logger.info(f"📊 {provider.name} found {len(holders)} holders")
            return FetchResult(
                holders=holders,
                token_mint=token_mint,
                pool_address=pool_address,
                provider=provider.name,
                attempts=attempts,
            )

        error = EmptyResultError(
            f"All {len(attempts)} providers exhausted for {token_mint}"
        )
        logger.warning(f"⚠️ {error}")
        return FetchResult(
            holders=[],
            token_mint=token_mint,
            pool_address=pool_address,
            attempts=attempts,
        )
