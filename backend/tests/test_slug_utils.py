"""
Tests for event slugs and the sheet tab names derived from them.
"""
from datetime import date

import pytest

from slug_utils import generate_slug, ensure_unique_slug, generate_event_slug, slug_to_sheet_name


@pytest.mark.parametrize('title, day, expected', [
    ('Purim', date(2025, 3, 14), 'purim-2025'),
    ("Women's Torah & Tea", None, 'womens-torah-and-tea'),
    ('Café Night!', date(2026, 1, 1), 'cafe-night-2026'),
    ('Gala 2026', date(2026, 6, 1), 'gala-2026'),
])
def test_generate_slug(title, day, expected):
    assert generate_slug(title, day) == expected


def test_generate_slug_empty_title():
    assert generate_slug('') is None


def test_ensure_unique_slug():
    assert ensure_unique_slug('purim-2026', set()) == 'purim-2026'
    assert ensure_unique_slug('purim-2026', {'purim-2026', 'purim-2026-2'}) == 'purim-2026-3'


def test_generate_event_slug_skips_taken(make_event, db_session):
    event = make_event(slug='purim-2026')

    assert generate_event_slug('Purim', date(2026, 3, 3), db_session) == 'purim-2026-2'
    assert generate_event_slug('Purim', date(2026, 3, 3), db_session, exclude_id=event.id) == 'purim-2026'


@pytest.mark.parametrize('slug, expected', [
    ('purim-2025', 'Purim25'),
    ('/chanukah-2026', 'Chanukah26'),
    ('womens-torah-and-tea-2026', 'Womens26'),
    ('gala', 'Gala'),
])
def test_slug_to_sheet_name(slug, expected):
    assert slug_to_sheet_name(slug) == expected
