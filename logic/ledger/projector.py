"""List Projector - derives the nice/naughty lists from the ledger."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .ledger import Ledger
from .models import ActivityItem, NaughtyListEntry, NiceListEntry, to_epoch_ms


@dataclass
class Projection:
    """
    Point-in-time view of the ledger.

    ``nice_list``/``naughty_list`` are capped for transmission; the counts
    always reflect the full sets.
    """

    nice_list: List[NiceListEntry] = field(default_factory=list)
    naughty_list: List[NaughtyListEntry] = field(default_factory=list)
    activity: List[ActivityItem] = field(default_factory=list)
    nice_count: int = 0
    naughty_count: int = 0
    last_update: Optional[datetime] = None

    @property
    def total_holders(self) -> int:
        return self.nice_count

    def stats(self) -> dict:
        return {
            "totalHolders": self.total_holders,
            "niceCount": self.nice_count,
            "naughtyCount": self.naughty_count,
        }

    def lists(self) -> dict:
        return {
            "niceList": [e.to_dict() for e in self.nice_list],
            "naughtyList": [e.to_dict() for e in self.naughty_list],
        }

    def state(self, activity_limit: int) -> dict:
        return {
            **self.stats(),
            **self.lists(),
            "recentActivity": [a.to_dict() for a in self.activity[:activity_limit]],
            "lastUpdate": to_epoch_ms(self.last_update),
        }

    def initial_state(self, contract_address: Optional[str], activity_limit: int = 20) -> dict:
        """Payload of the INITIAL_STATE message sent to new subscribers."""
        return {
            **self.stats(),
            **self.lists(),
            "recentActivity": [a.to_dict() for a in self.activity[:activity_limit]],
            "contractAddress": contract_address,
        }


def project(ledger: Ledger, points_divisor: int = 1_000_000, cap: int = 100) -> Projection:
    """Recompute both lists from scratch; O(n log n) in the ledger size."""
    holders = sorted(ledger.holders.values(), key=lambda h: h.balance, reverse=True)
    sellers = sorted(ledger.sellers.values(), key=lambda s: s.sold_at, reverse=True)

    nice = [
        NiceListEntry(
            address=h.address,
            balance=h.balance,
            points=h.balance // points_divisor,
            account_ref=h.account_ref,
        )
        for h in holders[:cap]
    ]
    naughty = [
        NaughtyListEntry(
            address=s.address,
            shame=s.shame,
            sold_at=s.sold_at,
            signature=s.signature,
        )
        for s in sellers[:cap]
    ]

    return Projection(
        nice_list=nice,
        naughty_list=naughty,
        activity=ledger.recent_activity(),
        nice_count=len(holders),
        naughty_count=len(sellers),
        last_update=ledger.last_update,
    )
