"""Shame labels and wallet verdicts."""

import random
from typing import Optional, Sequence

from .models import WalletStatus

SHAME_TITLES = (
    "PAPER HANDS",
    "NGMI",
    "WEAK",
    "GRINCH",
    "COAL ONLY",
    "SHAME",
    "SELLER",
    "RUGGED SELF",
)

NAUGHTY_VERDICTS = (
    "PAPER HANDS DETECTED! No presents for this wallet!",
    "SELLER ALERT! This wallet is on the NAUGHTY list forever!",
    "NGMI! Sold their bag. Only coal awaits.",
    "THE GRINCH WOULD BE PROUD... Naughty list confirmed!",
)

NICE_VERDICTS = (
    "DIAMOND HANDS! This wallet is on the NICE LIST!",
    "HODLER CONFIRMED! Rewards incoming!",
    "NICE LIST VERIFIED! Keep holding for maximum presents!",
    "SANTA APPROVES! Strong hands get rewarded!",
)

UNKNOWN_VERDICT = "This wallet doesn't hold the token. Buy now to join the Nice List!"


def pick(choices: Sequence[str], rng: Optional[random.Random] = None) -> str:
    """Uniform choice from a fixed set; pass a seeded rng for determinism."""
    return (rng or random).choice(choices)


def pick_shame(rng: Optional[random.Random] = None) -> str:
    return pick(SHAME_TITLES, rng)


def pick_verdict(status: WalletStatus, rng: Optional[random.Random] = None) -> str:
    if status == WalletStatus.NAUGHTY:
        return pick(NAUGHTY_VERDICTS, rng)
    if status == WalletStatus.NICE:
        return pick(NICE_VERDICTS, rng)
    return UNKNOWN_VERDICT
