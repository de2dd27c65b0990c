"""
Pricing Engine
Pure functions that turn attendee counts and tier selections into a charge amount.
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def round_money(value) -> float:
    """Round a dollar amount to whole cents, half up"""
    return float(_money(value).quantize(CENT, rounding=ROUND_HALF_UP))


def compute_event_subtotal(adults, kids, price_per_adult, kids_price, sponsorship_price=None, family_cap=None):
    """
    Compute the subtotal for one event registration.

    A selected sponsorship tier replaces per-head pricing outright, including a
    $0 "pay what you wish" tier, and is never capped. Otherwise the per-head
    total is clamped to the event's family cap when one is defined.

    Args:
        adults: Number of adults (validated >= 1 by the caller)
        kids: Number of children
        price_per_adult: Event price per adult
        kids_price: Event price per child
        sponsorship_price: Price of the selected tier, or None
        family_cap: Maximum per-head subtotal for this event, or None

    Returns:
        The amount to charge, rounded to cents
    """
    if sponsorship_price is not None:
        return round_money(sponsorship_price)

    raw = adults * _money(price_per_adult) + kids * _money(kids_price)
    if family_cap is not None:
        raw = min(raw, _money(family_cap))
    return round_money(raw)


def compute_donation_amount(raw_amount):
    """Donation amount rounded to cents; callers reject bad input first"""
    return round_money(raw_amount)
