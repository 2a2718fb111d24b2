"""Event types for the ingestion layer."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, List, Any


class EventType(str, Enum):
    """Direction of a tracked-token transaction."""

    BUY = "buy"
    SELL = "sell"


def _to_int(value: Any) -> int:
    """Best-effort conversion of provider/webhook amounts to base units."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def to_base_units(ui_amount: Any, decimals: Any) -> int:
    """Scale a UI (decimal) token amount to integer base units."""
    try:
        return int(Decimal(str(ui_amount)) * (Decimal(10) ** int(decimals)))
    except (InvalidOperation, TypeError, ValueError, OverflowError):
        return 0


@dataclass(frozen=True)
class HolderRecord:
    """Canonical holder entry produced by every snapshot provider."""

    address: str
    balance: int
    account_ref: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.address) and self.balance > 0

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "balance": self.balance,
            "tokenAccount": self.account_ref,
        }


@dataclass
class TokenTransfer:
    """A single token movement inside a webhook transaction."""

    mint: str
    amount: int
    from_account: Optional[str] = None
    to_account: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "TokenTransfer":
        return cls(
            mint=data.get("mint") or "",
            amount=cls._base_amount(data),
            from_account=data.get("fromUserAccount") or data.get("fromAccount") or None,
            to_account=data.get("toUserAccount") or data.get("toAccount") or None,
        )

    @staticmethod
    def _base_amount(data: dict) -> int:
        """
        Transfer amount in base units.

        Helius reports ``tokenAmount`` in UI units; ``rawTokenAmount`` carries
        the exact base-unit string and the mint's decimals when present.
        """
        raw = data.get("rawTokenAmount")
        if isinstance(raw, dict):
            if raw.get("tokenAmount") is not None:
                return _to_int(raw["tokenAmount"])
            if raw.get("decimals") is not None and data.get("tokenAmount") is not None:
                return to_base_units(data["tokenAmount"], raw["decimals"])
        return _to_int(data.get("tokenAmount", data.get("amount")))


@dataclass
class TransactionNotification:
    """
    Parsed Helius enhanced-transaction webhook entry.

    Only the fields the ledger needs are kept: who paid, which token moved,
    how much, and when.
    """

    signature: str
    wallet: str
    timestamp: datetime
    tx_type: Optional[str] = None
    token_transfers: List[TokenTransfer] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionNotification":
        raw_ts = data.get("timestamp")
        if raw_ts:
            timestamp = datetime.fromtimestamp(float(raw_ts), tz=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)

        return cls(
            signature=data.get("signature") or "",
            wallet=data.get("feePayer") or data.get("source") or "",
            timestamp=timestamp,
            tx_type=data.get("type") or data.get("transferDirection"),
            token_transfers=[
                TokenTransfer.from_dict(t)
                for t in (data.get("tokenTransfers") or [])
                if isinstance(t, dict)
            ],
        )

    def involves(self, mint: Optional[str]) -> bool:
        """True if any transfer references the given mint."""
        if not mint:
            return False
        return any(t.mint == mint for t in self.token_transfers)

    def tracked_transfer(self, mint: str) -> Optional[TokenTransfer]:
        for transfer in self.token_transfers:
            if transfer.mint == mint:
                return transfer
        return None

    def direction(self, mint: str) -> EventType:
        """
        Classify a transaction by the direction of the tracked-mint transfer.

        Tokens arriving at the fee payer are a buy, tokens leaving it are a
        sell. When neither side names the fee payer, any sending user account
        marks a sell.
        """
        if (self.tx_type or "").upper() == "SELL":
            return EventType.SELL
        transfer = self.tracked_transfer(mint)
        if transfer is None:
            return EventType.BUY
        if transfer.to_account and transfer.to_account == self.wallet:
            return EventType.BUY
        if transfer.from_account:
            return EventType.SELL
        return EventType.BUY

    def amount_for(self, mint: str) -> int:
        """Amount moved by the tracked-mint transfer, in base units."""
        transfer = self.tracked_transfer(mint)
        if transfer is None:
            return 0
        return max(0, transfer.amount)
