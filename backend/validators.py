"""
Request Validation Helpers
Shared checks for the donation, registration and contact endpoints.
"""

import math
import re

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class ValidationError(ValueError):
    """Raised for malformed client input; message is safe to show the user"""


def clean_text(value):
    """Strip whitespace and header-injection characters from a single-line field"""
    if value is None:
        return ''
    return str(value).replace('\n', '').replace('\r', '').strip()


def clean_multiline(value):
    """Normalise line endings in free-text fields"""
    if value is None:
        return ''
    return str(value).replace('\r\n', '\n').replace('\r', '\n').strip()


def is_valid_email(email):
    """Check an address has the local@domain.tld shape"""
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def require_email(email):
    if not is_valid_email(email):
        raise ValidationError('Invalid email format')
    return email


def parse_amount(value, field='amount'):
    """Parse a strictly positive, finite amount"""
    if value is None or value == '' or isinstance(value, bool):
        raise ValidationError(f'Invalid {field}')
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}')
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f'Invalid {field}')
    return round(amount, 2)


def parse_optional_amount(value, field='amount'):
    """Parse an amount that may be omitted; returns None when absent"""
    if value is None or value == '':
        return None
    return parse_amount(value, field)


def parse_count(value, field, default, minimum):
    """Parse an attendee count, falling back to default when omitted"""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {field} count')
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field} count')
    if not math.isfinite(number) or number != int(number):
        raise ValidationError(f'Invalid {field} count')
    count = int(number)
    if count < minimum:
        if field == 'adults':
            raise ValidationError('At least 1 adult is required')
        raise ValidationError(f'Invalid {field} count')
    return count


def parse_bool(value):
    """Interpret JSON booleans and common string forms"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def normalize_guests(guests):
    """Keep only guests with a name; drop malformed entries"""
    if not isinstance(guests, list):
        return []

    cleaned = []
    for guest in guests:
        if not isinstance(guest, dict):
            continue
        name = clean_text(guest.get('name'))
        if not name:
            continue
        entry = {'name': name}
        email = clean_text(guest.get('email'))
        if email:
            entry['email'] = email
        cleaned.append(entry)
    return cleaned
