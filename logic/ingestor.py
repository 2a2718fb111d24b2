"""Event Ingestor - applies single buy/sell notifications to the ledger."""

import logging
from collections import OrderedDict
from typing import Any, Callable, Optional, Protocol

from ingestion.config import TrackerConfig, DEFAULT_CONFIG
from ingestion.events import EventType, TransactionNotification
from logic.ledger import ActivityItem, Ledger, MessageType

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Protocol for the broadcast side (BroadcastHub satisfies it)."""
    def publish(self, message_type: MessageType, data: Any) -> int: ...


class EventIngestor:
    """
    Applies incremental transaction notifications (webhook deliveries) to
    the ledger without waiting for a full snapshot.

    Sells move the wallet from holders to sellers; buys add to the wallet's
    balance. Each applied event is prepended to the activity feed and
    broadcast as BUY/SELL followed by ACTIVITY.
    """

    def __init__(
        self,
        ledger: Ledger,
        publisher: Optional[Publisher] = None,
        config: TrackerConfig = DEFAULT_CONFIG,
        on_change: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the ingestor.

        Args:
            ledger: The ledger to mutate
            publisher: Broadcast target for BUY/SELL/ACTIVITY messages
            config: Tracker configuration (dedupe settings)
            on_change: Called after every applied event (projection refresh)
        """
        self.ledger = ledger
        self.publisher = publisher
        self.config = config
        self.on_change = on_change
        self.token_mint: Optional[str] = config.token_mint
        self._seen_signatures: "OrderedDict[str, None]" = OrderedDict()
        self._applied = 0
        self._duplicates = 0

    def ingest_batch(self, payload: Any) -> int:
        """
        Process a webhook body (a list of transactions).

        A malformed entry is logged and skipped; it never stops the rest of
        the batch.

        Returns:
            Number of transactions applied to the ledger
        """
        if not isinstance(payload, list):
            logger.warning(f"Ignoring webhook payload of type {type(payload).__name__}")
            return 0

        applied = 0
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            try:
                notification = TransactionNotification.from_dict(raw)
                if self.ingest(notification) is not None:
                    applied += 1
            except Exception as e:
                logger.error(f"Error processing webhook transaction: {e}")
        return applied

    def ingest(self, notification: TransactionNotification) -> Optional[ActivityItem]:
        """
        Apply one notification.

        Returns:
            The activity item recorded, or None when the notification was
            ignored (other token, no wallet, duplicate, repeat seller).
        """
        mint = self.token_mint
        if not notification.involves(mint):
            return None
        if not notification.wallet:
            logger.debug(f"Skipping {notification.signature[:16]}...: no wallet")
            return None
        if self._is_duplicate(notification.signature):
            self._duplicates += 1
            logger.info(f"Duplicate delivery ignored: {notification.signature[:16]}...")
            return None

        wallet = notification.wallet
        amount = notification.amount_for(mint)
        signature = notification.signature or None

        if notification.direction(mint) == EventType.SELL:
            outcome = self.ledger.record_sell(wallet, amount, notification.timestamp, signature)
            if outcome is None:
                return None
            seller, item = outcome
            logger.info(f"💀 SELL {wallet[:8]}... ({amount}) -> {seller.shame}")
            self._publish(MessageType.SELL, {
                "wallet": wallet,
                "amount": amount,
                "signature": signature,
                "shame": seller.shame,
            })
        else:
            item, holder = self.ledger.record_buy(wallet, amount, notification.timestamp, signature)
            if holder is None:
                logger.info(f"BUY from seller {wallet[:8]}... recorded, not reinstated")
            else:
                logger.info(f"🎁 BUY {wallet[:8]}... (+{amount}, balance {holder.balance})")
            self._publish(MessageType.BUY, {
                "wallet": wallet,
                "amount": amount,
                "signature": signature,
            })

        self._publish(MessageType.ACTIVITY, item.to_dict())
        self._applied += 1
        if self.on_change:
            self.on_change()
        return item

    def _is_duplicate(self, signature: str) -> bool:
        if not self.config.dedupe_signatures or not signature:
            return False
        if signature in self._seen_signatures:
            return True

        self._seen_signatures[signature] = None
        while len(self._seen_signatures) > self.config.seen_signature_cache_size:
            self._seen_signatures.popitem(last=False)
        return False

    def _publish(self, message_type: MessageType, data: dict) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(message_type, data)
        except Exception as e:
            logger.error(f"Failed to broadcast {message_type.value}: {e}")

    def stats(self) -> dict:
        return {
            "applied": self._applied,
            "duplicates": self._duplicates,
            "seen_signatures": len(self._seen_signatures),
        }
