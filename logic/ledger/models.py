"""Data models for the holder ledger."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


def to_epoch_ms(ts: Optional[datetime]) -> Optional[int]:
    """Serialize a timestamp as epoch milliseconds (the wire format)."""
    if ts is None:
        return None
    return int(ts.timestamp() * 1000)


class ActivityType(str, Enum):
    BUY = "buy"
    SELL = "sell"


class MessageType(str, Enum):
    """Kinds of ledger change pushed to real-time subscribers."""
    INITIAL_STATE = "INITIAL_STATE"
    STATS_UPDATE = "STATS_UPDATE"
    LISTS_UPDATE = "LISTS_UPDATE"
    BUY = "BUY"
    SELL = "SELL"
    ACTIVITY = "ACTIVITY"
    CA_UPDATE = "CA_UPDATE"


class WalletStatus(str, Enum):
    """Standing of a single address."""
    NICE = "NICE"
    NAUGHTY = "NAUGHTY"
    UNKNOWN = "UNKNOWN"


@dataclass
class Holder:
    """An address currently holding the tracked token."""

    address: str
    balance: int
    first_seen: datetime
    last_seen: datetime
    account_ref: Optional[str] = None
    signature: Optional[str] = None


@dataclass
class Seller:
    """
    An address that has divested. Permanent: once created, a seller is
    never removed or reinstated.
    """

    address: str
    sold_at: datetime
    shame: str
    signature: Optional[str] = None
    sold_amount: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "soldAt": to_epoch_ms(self.sold_at),
            "shame": self.shame,
            "signature": self.signature,
            "soldAmount": self.sold_amount,
        }


@dataclass
class ActivityItem:
    """One entry of the recent-activity feed."""

    type: ActivityType
    address: str
    amount: int
    timestamp: datetime
    signature: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "address": self.address,
            "amount": self.amount,
            "signature": self.signature,
            "time": "Just now",
            "timestamp": to_epoch_ms(self.timestamp),
        }


@dataclass
class NiceListEntry:
    """Projection of a Holder for the nice list."""

    address: str
    balance: int
    points: int
    account_ref: Optional[str] = None
    status: str = "HODLER"

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "balance": self.balance,
            "tokenAccount": self.account_ref,
            "points": self.points,
            "status": self.status,
        }


@dataclass
class NaughtyListEntry:
    """Projection of a Seller for the naughty list."""

    address: str
    shame: str
    sold_at: datetime
    signature: Optional[str] = None
    status: str = "SELLER"

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "shame": self.shame,
            "soldAt": to_epoch_ms(self.sold_at),
            "signature": self.signature,
            "status": self.status,
        }
