"""Holder Ledger - holders, sellers, activity and their projections."""

from .models import (
    MessageType,
    ActivityItem,
    ActivityType,
    Holder,
    NaughtyListEntry,
    NiceListEntry,
    Seller,
    WalletStatus,
)
from .ledger import Ledger, ReconcileResult
from .projector import Projection, project
from .shame import SHAME_TITLES, pick_shame, pick_verdict

__all__ = [
    "MessageType",
    "ActivityItem",
    "ActivityType",
    "Holder",
    "NaughtyListEntry",
    "NiceListEntry",
    "Seller",
    "WalletStatus",
    "Ledger",
    "ReconcileResult",
    "Projection",
    "project",
    "SHAME_TITLES",
    "pick_shame",
    "pick_verdict",
]
