"""Credit economy constants: 10 credits = 1 CAD (1 credit = 10 cents)."""

from __future__ import annotations

CREDITS_PER_CAD = 10
CENTS_PER_CREDIT = 100 // CREDITS_PER_CAD


def credits_for_cents(cents: int) -> int:
    """Credits needed to cover ``cents``; partial credits round up."""

    if cents < 0:
        raise ValueError("Amount in cents cannot be negative")
    return -(-cents // CENTS_PER_CREDIT)
