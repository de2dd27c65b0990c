"""
Tests for the event and donation pricing rules.
"""
from pricing import compute_event_subtotal, compute_donation_amount


def test_per_head_pricing():
    assert compute_event_subtotal(2, 3, 50, 20) == 160


def test_kids_default_to_zero_cost_when_event_has_no_kids_price():
    assert compute_event_subtotal(1, 4, 36, 0) == 36


def test_family_cap_clamps_per_head_total():
    assert compute_event_subtotal(2, 5, 50, 20, family_cap=150) == 150


def test_family_cap_leaves_smaller_totals_alone():
    assert compute_event_subtotal(1, 1, 50, 20, family_cap=150) == 70


def test_sponsorship_replaces_per_head_pricing():
    assert compute_event_subtotal(4, 6, 50, 20, sponsorship_price=500) == 500


def test_sponsorship_is_never_capped():
    assert compute_event_subtotal(1, 0, 50, 20, sponsorship_price=1800, family_cap=150) == 1800


def test_zero_price_sponsorship_still_overrides():
    assert compute_event_subtotal(3, 2, 50, 20, sponsorship_price=0) == 0


def test_free_event():
    assert compute_event_subtotal(2, 2, 0, 0) == 0


def test_whole_donation_amount_is_unchanged():
    assert compute_donation_amount(18.0) == 18.0


def test_fractional_prices_round_to_cents():
    assert compute_event_subtotal(2, 1, 33.33, 10.10) == 76.76


def test_family_cap_result_is_rounded():
    assert compute_event_subtotal(3, 0, 33.335, 0, family_cap=500) == 100.01


def test_donation_amount_rounds_half_up():
    assert compute_donation_amount(10.125) == 10.13
