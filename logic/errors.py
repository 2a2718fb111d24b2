"""Error taxonomy for the holder tracker."""

import re
from typing import Optional


# Solana addresses are base58, 32-44 chars
ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class TrackerError(Exception):
    """Base class for all tracker errors."""


class ProviderError(TrackerError):
    """A single holder provider failed (network, status or parse)."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(f"{provider}: {message}")


class EmptyResultError(TrackerError):
    """Every provider in the fallback chain came back empty."""


class RateLimitRejection(TrackerError):
    """A refresh was requested before the refresh interval elapsed."""

    def __init__(self, wait_seconds: float, next_refresh_ms: Optional[int] = None, reason: str = ""):
        self.wait_seconds = max(0.0, wait_seconds)
        self.next_refresh_ms = next_refresh_ms
        message = reason or f"Please wait {self.retry_after} seconds before refreshing again"
        super().__init__(message)

    @property
    def retry_after(self) -> int:
        """Whole seconds to wait, rounded up."""
        return int(-(-self.wait_seconds // 1))


class ValidationError(TrackerError):
    """Malformed input rejected before any fetch."""


class UnauthorizedError(TrackerError):
    """Control operation attempted without a valid admin secret."""


def validate_address(address: Optional[str], field_name: str = "address") -> str:
    """Return the stripped address or raise ValidationError."""
    if not address or not isinstance(address, str):
        raise ValidationError(f"{field_name} required")
    address = address.strip()
    if not ADDRESS_PATTERN.match(address):
        raise ValidationError(f"Invalid {field_name}: {address[:48]}")
    return address
