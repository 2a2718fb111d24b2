"""Configuration for the holder tracker."""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class TrackerConfig:
    """Configuration for holder fetching, ledger projection and refresh."""

    # Server
    port: int = field(default_factory=lambda: _env_int("PORT", 3000))
    admin_secret: str = field(
        default_factory=lambda: os.getenv("TRACKER_SECRET", "admin123")
    )

    # Provider credentials
    helius_api_key: str = field(
        default_factory=lambda: os.getenv("HELIUS_API_KEY", "")
    )
    birdeye_api_key: str = field(
        default_factory=lambda: os.getenv("BIRDEYE_API_KEY", "")
    )
    public_rpc_url: str = field(
        default_factory=lambda: os.getenv(
            "SOLANA_RPC_URL",
            "https://api.mainnet-beta.solana.com"
        )
    )

    # Provider calls
    provider_timeout_seconds: float = field(
        default_factory=lambda: _env_float("PROVIDER_TIMEOUT_SECONDS", 10.0)
    )
    snapshot_page_size: int = 100
    helius_page_limit: int = 1000

    # Refresh scheduling
    refresh_interval_seconds: float = field(
        default_factory=lambda: _env_float("REFRESH_INTERVAL_SECONDS", 180.0)
    )

    # Projection
    activity_cap: int = 100
    list_cap: int = 100
    initial_activity_cap: int = 20
    state_activity_cap: int = 50
    points_divisor: int = 1_000_000

    # Webhook delivery (auth header configured on the Helius webhook, optional)
    webhook_auth_token: str = field(
        default_factory=lambda: os.getenv("WEBHOOK_AUTH_TOKEN", "")
    )
    dedupe_signatures: bool = True
    seen_signature_cache_size: int = 10_000

    # Tracked token (usually set at runtime through the admin surface)
    token_mint: Optional[str] = field(
        default_factory=lambda: os.getenv("TOKEN_MINT") or None
    )

    @property
    def helius_rpc_url(self) -> Optional[str]:
        """Get Helius RPC URL if API key is configured."""
        if self.helius_api_key:
            return f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
        return None

    @property
    def rpc_url(self) -> str:
        """Best available JSON-RPC endpoint. Priority: Helius > public RPC."""
        return self.helius_rpc_url or self.public_rpc_url


# Default configuration
DEFAULT_CONFIG = TrackerConfig()
