"""
Tracker Service - owns the ledger and wires the tracker components together.

Provides:
- Control operations (refresh trigger, contract address, wallet lookup)
- Webhook ingestion
- Real-time broadcast of ledger changes
"""

import asyncio
import hmac
import logging
import random
import time
from typing import Any, Dict, Optional

from ingestion.config import TrackerConfig, DEFAULT_CONFIG
from ingestion.fetcher import HolderFetcher
from logic.errors import UnauthorizedError, validate_address
from logic.ingestor import EventIngestor
from logic.ledger import Ledger, MessageType, Projection, WalletStatus, pick_verdict, project
from logic.ledger.models import to_epoch_ms
from logic.scheduler import RefreshOutcome, RefreshScheduler
from api.broadcast import BroadcastHub

logger = logging.getLogger(__name__)


class TrackerService:
    """
    Single owner of the holder ledger.

    Snapshot path: scheduler -> fetcher -> ledger.reconcile -> broadcast.
    Incremental path: webhook -> ingestor -> ledger -> broadcast.
    """

    def __init__(
        self,
        config: TrackerConfig = DEFAULT_CONFIG,
        fetcher: Optional[HolderFetcher] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.rng = rng or random.Random()
        self.ledger = Ledger(activity_cap=config.activity_cap, rng=self.rng)
        self.fetcher = fetcher or HolderFetcher(config)
        self.hub = BroadcastHub(self.initial_state)
        self.ingestor = EventIngestor(
            self.ledger,
            publisher=self.hub,
            config=config,
            on_change=self.publish_projection,
        )
        self.scheduler = RefreshScheduler(
            self.fetcher,
            self.ledger,
            config,
            on_refresh=self._on_refresh,
        )
        self.contract_address: Optional[str] = None
        self.start_time = time.time()
        self._bootstrap_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.fetcher.start()
        if self.config.token_mint:
            logger.info(f"📊 Bootstrapping holders for {self.config.token_mint}")
            self._bootstrap_task = asyncio.create_task(self._bootstrap(self.config.token_mint))
        else:
            logger.info("📊 Starting with empty state")

    async def _bootstrap(self, mint: str) -> None:
        try:
            outcome = await self.scheduler.trigger(mint)
        except Exception as e:
            logger.error(f"Initial holder fetch failed: {e}")
            return
        self._set_contract_address(outcome.fetch.pool_address or outcome.fetch.token_mint)

    async def stop(self) -> None:
        if self._bootstrap_task is not None:
            self._bootstrap_task.cancel()
            try:
                await self._bootstrap_task
            except asyncio.CancelledError:
                pass
            self._bootstrap_task = None
        await self.scheduler.stop()
        await self.hub.close()
        await self.fetcher.close()
        logger.info("👋 Tracker stopped")

    # ------------------------------------------------------------------
    # Projection & broadcast
    # ------------------------------------------------------------------

    def projection(self) -> Projection:
        return project(
            self.ledger,
            points_divisor=self.config.points_divisor,
            cap=self.config.list_cap,
        )

    def initial_state(self) -> dict:
        return self.projection().initial_state(
            self.contract_address,
            activity_limit=self.config.initial_activity_cap,
        )

    def publish_projection(self) -> None:
        """Push fresh lists and counts to every subscriber."""
        view = self.projection()
        self.hub.publish(MessageType.LISTS_UPDATE, view.lists())
        self.hub.publish(MessageType.STATS_UPDATE, view.stats())

    def _on_refresh(self, outcome: RefreshOutcome) -> None:
        self.ingestor.token_mint = outcome.fetch.token_mint
        if outcome.reconcile is not None:
            self.publish_projection()

    def _set_contract_address(self, address: str) -> None:
        self.contract_address = address
        self.hub.publish(MessageType.CA_UPDATE, {"contractAddress": address})

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    def verify_secret(self, password: Optional[str]) -> bool:
        if not password:
            return False
        return hmac.compare_digest(str(password).encode(), self.config.admin_secret.encode())

    def require_secret(self, password: Optional[str]) -> None:
        if not self.verify_secret(password):
            logger.warning("Rejected control operation: bad secret")
            raise UnauthorizedError("Unauthorized")

    async def trigger_refresh(self, password: Optional[str], mint_address: Optional[str]) -> Dict[str, Any]:
        """
        Operator-triggered holder refresh.

        Raises:
            UnauthorizedError: bad secret
            ValidationError: malformed address
            RateLimitRejection: refreshed too recently
        """
        self.require_secret(password)
        address = validate_address(mint_address, "Mint address")

        outcome = await self.scheduler.trigger(address)
        result = outcome.fetch

        if result.pool_address:
            self._set_contract_address(result.pool_address)
        elif not self.contract_address:
            self._set_contract_address(result.token_mint)

        logger.info(f"✅ Loaded {len(result.holders)} holders (token: {result.token_mint})")
        return {
            "success": True,
            "holdersCount": len(result.holders),
            "holders": [h.to_dict() for h in result.holders[:self.config.list_cap]],
            "tokenMint": result.token_mint,
            "poolAddress": result.pool_address,
            "provider": result.provider,
            "nextRefresh": self.scheduler.next_refresh_ms(),
        }

    def set_tracked_address(self, password: Optional[str], address: Optional[str]) -> Dict[str, Any]:
        """Set the displayed contract address and broadcast CA_UPDATE."""
        self.require_secret(password)
        address = validate_address(address, "Contract address")
        self._set_contract_address(address)
        logger.info(f"📝 Contract Address updated: {address}")
        return {"success": True, "contractAddress": address}

    def query_single_address(self, address: Optional[str]) -> Dict[str, Any]:
        """Standing of one wallet: NICE, NAUGHTY or UNKNOWN."""
        address = validate_address(address)
        status, entry = self.ledger.lookup(address)

        balance = 0
        first_seen = None
        last_activity = None
        if status == WalletStatus.NICE:
            balance = entry.balance
            first_seen = to_epoch_ms(entry.first_seen)
            last_activity = to_epoch_ms(entry.last_seen)
        elif status == WalletStatus.NAUGHTY:
            last_activity = to_epoch_ms(entry.sold_at)

        return {
            "address": address,
            "balance": balance,
            "status": status.value,
            "firstSeen": first_seen,
            "lastActivity": last_activity,
            "isNice": status == WalletStatus.NICE,
            "isNaughty": status == WalletStatus.NAUGHTY,
            "verdict": pick_verdict(status, self.rng),
        }

    def handle_webhook(self, payload: Any) -> int:
        return self.ingestor.ingest_batch(payload)

    def get_state(self) -> Dict[str, Any]:
        return self.projection().state(self.config.state_activity_cap)

    def get_status(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": int(time.time() - self.start_time),
            "token_mint": self.scheduler.tracked_mint,
            "contract_address": self.contract_address,
            "token_info": self.fetcher.token_info,
            "websocket_clients": self.hub.subscriber_count,
            "broadcast": self.hub.stats(),
            "refresh": self.scheduler.stats(),
            "ingestion": self.ingestor.stats(),
            "holders": len(self.ledger),
            "sellers": len(self.ledger.sellers),
        }
