"""Holder Ledger - authoritative holder/seller state and snapshot reconciliation."""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple, Union

from ingestion.events import HolderRecord
from .models import ActivityItem, ActivityType, Holder, Seller, WalletStatus
from .shame import pick_shame

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileResult:
    """Summary of one snapshot reconciliation."""

    upserted: int = 0
    new_sellers: List[Seller] = field(default_factory=list)
    skipped_sellers: List[str] = field(default_factory=list)


class Ledger:
    """
    In-memory ledger of holders, sellers and recent activity.

    Invariants:
    - an address is never a holder and a seller at the same time
    - the seller set only grows
    - the activity feed never exceeds ``activity_cap`` items
    - balances are never negative

    All mutating methods are synchronous, so on a single event loop each call
    is atomic with respect to every reader.
    """

    def __init__(
        self,
        activity_cap: int = 100,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize an empty ledger.

        Args:
            activity_cap: Maximum length of the activity feed
            rng: Random source for shame labels (seed it in tests)
            clock: Source of "now" for sale timestamps
        """
        self.holders: Dict[str, Holder] = {}
        self.sellers: Dict[str, Seller] = {}
        self.activity: Deque[ActivityItem] = deque(maxlen=activity_cap)
        self.activity_cap = activity_cap
        self.rng = rng or random.Random()
        self.clock = clock
        self.last_update: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Snapshot path
    # ------------------------------------------------------------------

    def reconcile(
        self,
        snapshot: Iterable[HolderRecord],
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        """
        Diff a full holder snapshot against the ledger.

        Every snapshot entry is upserted as a holder (first_seen preserved).
        Every current holder missing from the snapshot is inferred to have
        sold and becomes a seller. Addresses already marked as sellers are
        never reinstated.

        Args:
            snapshot: Canonical holder records from a provider
            now: Reconciliation time (defaults to the ledger clock)

        Returns:
            ReconcileResult describing what changed
        """
        now = now or self.clock()
        result = ReconcileResult()
        previous = set(self.holders)
        updated: Dict[str, Holder] = {}

        for record in snapshot:
            if not record.address or record.balance < 0:
                continue
            if record.address in self.sellers:
                result.skipped_sellers.append(record.address)
                continue

            existing = self.holders.get(record.address) or updated.get(record.address)
            updated[record.address] = Holder(
                address=record.address,
                balance=record.balance,
                account_ref=record.account_ref,
                first_seen=existing.first_seen if existing else now,
                last_seen=now,
                signature=existing.signature if existing else None,
            )
            previous.discard(record.address)
            result.upserted += 1

        for address in previous:
            if address not in self.sellers:
                seller = Seller(address=address, sold_at=now, shame=pick_shame(self.rng))
                self.sellers[address] = seller
                result.new_sellers.append(seller)

        self.holders = updated
        self.last_update = now

        if result.new_sellers:
            logger.info(f"💀 Reconcile inferred {len(result.new_sellers)} new sellers")
        if result.skipped_sellers:
            logger.debug(f"Ignored {len(result.skipped_sellers)} sellers present in snapshot")
        return result

    # ------------------------------------------------------------------
    # Incremental path
    # ------------------------------------------------------------------

    def record_buy(
        self,
        address: str,
        amount: int,
        timestamp: datetime,
        signature: Optional[str] = None,
    ) -> Tuple[ActivityItem, Optional[Holder]]:
        """
        Apply a buy. Returns the new activity item and the updated holder,
        or None for the holder when the buyer is already a seller.
        """
        amount = max(0, amount)
        holder = None
        if address not in self.sellers:
            existing = self.holders.get(address)
            holder = Holder(
                address=address,
                balance=(existing.balance if existing else 0) + amount,
                account_ref=existing.account_ref if existing else None,
                first_seen=existing.first_seen if existing else timestamp,
                last_seen=timestamp,
                signature=signature,
            )
            self.holders[address] = holder

        item = self._push_activity(ActivityType.BUY, address, amount, timestamp, signature)
        return item, holder

    def record_sell(
        self,
        address: str,
        amount: int,
        timestamp: datetime,
        signature: Optional[str] = None,
    ) -> Optional[Tuple[Seller, ActivityItem]]:
        """Apply a sell. Returns None when the address is already a seller."""
        if address in self.sellers:
            return None

        seller = Seller(
            address=address,
            sold_at=timestamp,
            shame=pick_shame(self.rng),
            signature=signature,
            sold_amount=max(0, amount),
        )
        self.sellers[address] = seller
        self.holders.pop(address, None)

        item = self._push_activity(ActivityType.SELL, address, max(0, amount), timestamp, signature)
        return seller, item

    def _push_activity(
        self,
        activity_type: ActivityType,
        address: str,
        amount: int,
        timestamp: datetime,
        signature: Optional[str],
    ) -> ActivityItem:
        item = ActivityItem(
            type=activity_type,
            address=address,
            amount=amount,
            timestamp=timestamp,
            signature=signature,
        )
        # deque(maxlen) drops the oldest entry from the right
        self.activity.appendleft(item)
        self.last_update = self.clock()
        return item

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def recent_activity(self, limit: Optional[int] = None) -> List[ActivityItem]:
        items = list(self.activity)
        return items if limit is None else items[:limit]

    def lookup(self, address: str) -> Tuple[WalletStatus, Optional[Union[Holder, Seller]]]:
        """Standing of a single address."""
        if address in self.sellers:
            return WalletStatus.NAUGHTY, self.sellers[address]
        if address in self.holders:
            return WalletStatus.NICE, self.holders[address]
        return WalletStatus.UNKNOWN, None

    def __len__(self) -> int:
        return len(self.holders)
