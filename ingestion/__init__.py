"""Ingestion Layer - holder snapshots and webhook transaction events."""

from .config import TrackerConfig, DEFAULT_CONFIG
from .events import EventType, HolderRecord, TokenTransfer, TransactionNotification
from .providers import HolderProvider, ProviderResult, PoolResolver, build_default_chain
from .fetcher import FetchResult, HolderFetcher, merge_by_owner

__all__ = [
    "TrackerConfig",
    "DEFAULT_CONFIG",
    "EventType",
    "HolderRecord",
    "TokenTransfer",
    "TransactionNotification",
    "HolderProvider",
    "ProviderResult",
    "PoolResolver",
    "build_default_chain",
    "FetchResult",
    "HolderFetcher",
    "merge_by_owner",
]
