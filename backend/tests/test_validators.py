"""
Tests for request validation helpers.
"""
import pytest

from validators import (
    ValidationError, clean_text, clean_multiline, is_valid_email, require_email,
    parse_amount, parse_optional_amount, parse_count, parse_bool, normalize_guests
)


def test_clean_text_strips_header_injection():
    assert clean_text("  Jane\r\nBcc: evil@example.com ") == 'JaneBcc: evil@example.com'
    assert clean_text(None) == ''


def test_clean_multiline_normalises_line_endings():
    assert clean_multiline("line one\r\nline two\rline three\n") == 'line one\nline two\nline three'


@pytest.mark.parametrize('email', ['a@b.co', 'first.last+tag@example.org'])
def test_valid_emails(email):
    assert is_valid_email(email)


@pytest.mark.parametrize('email', ['', 'plainaddress', 'a@b', 'a b@c.com', '@example.com'])
def test_invalid_emails(email):
    assert not is_valid_email(email)
    with pytest.raises(ValidationError, match='Invalid email format'):
        require_email(email)


def test_parse_amount_accepts_numbers_and_strings():
    assert parse_amount('25') == 25.0
    assert parse_amount('10.126') == 10.13


@pytest.mark.parametrize('value', [None, '', 0, -5, 'abc', 'nan', 'inf', True])
def test_parse_amount_rejects_bad_values(value):
    with pytest.raises(ValidationError, match='Invalid donation amount'):
        parse_amount(value, 'donation amount')


def test_parse_optional_amount():
    assert parse_optional_amount(None) is None
    assert parse_optional_amount('') is None
    assert parse_optional_amount('36') == 36.0


def test_parse_count_defaults_and_minimums():
    assert parse_count(None, 'adults', default=1, minimum=1) == 1
    assert parse_count('3', 'kids', default=0, minimum=0) == 3
    assert parse_count(2.0, 'adults', default=1, minimum=1) == 2


def test_parse_count_requires_an_adult():
    with pytest.raises(ValidationError, match='At least 1 adult is required'):
        parse_count(0, 'adults', default=1, minimum=1)


@pytest.mark.parametrize('value', [-1, 1.5, 'two', True])
def test_parse_count_rejects_bad_kids(value):
    with pytest.raises(ValidationError, match='Invalid kids count'):
        parse_count(value, 'kids', default=0, minimum=0)


def test_parse_bool():
    assert parse_bool(True) is True
    assert parse_bool('true') is True
    assert parse_bool('1') is True
    assert parse_bool(None) is False
    assert parse_bool('no') is False


def test_normalize_guests_drops_unnamed_entries():
    guests = [
        {'name': ' Rachel ', 'email': 'rachel@example.com'},
        {'name': ''},
        'not a dict',
        {'name': 'Moshe', 'email': ''},
    ]
    assert normalize_guests(guests) == [
        {'name': 'Rachel', 'email': 'rachel@example.com'},
        {'name': 'Moshe'},
    ]
    assert normalize_guests('nope') == []
