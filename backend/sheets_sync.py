"""
Google Sheets Integration Module
Mirrors donations, contact submissions and event registrations to a shared
spreadsheet via the Sheets REST API.

The mirror is best-effort: every public function returns a result dict and
never raises, so callers can fire and forget.
"""

import os
import time
import threading
import logging
from datetime import datetime
from urllib.parse import quote

import jwt
import requests

from slug_utils import slug_to_sheet_name

logger = logging.getLogger(__name__)

# Google Sheets configuration
SPREADSHEET_ID = os.environ.get('GOOGLE_SHEETS_SPREADSHEET_ID')
SERVICE_ACCOUNT_EMAIL = os.environ.get('GOOGLE_SERVICE_ACCOUNT_EMAIL')
# Keys pasted into .env usually carry literal "\n" sequences
PRIVATE_KEY = (os.environ.get('GOOGLE_PRIVATE_KEY') or '').replace('\\n', '\n')

SHEETS_API_URL = 'https://sheets.googleapis.com/v4/spreadsheets'
TOKEN_URL = 'https://oauth2.googleapis.com/token'
SCOPE = 'https://www.googleapis.com/auth/spreadsheets'
REQUEST_TIMEOUT = 10

DONATIONS_RANGE = 'Donations!A:N'
SIGNUPS_RANGE = 'Email Signups!A:H'

EVENT_SHEET_HEADERS = [
    'Registration ID',
    'Timestamp',
    'Name',
    'Email',
    'Phone',
    'Spouse Name',
    'Spouse Email',
    'Spouse Phone',
    'Adults Count',
    'Kids Count',
    'All Attendees',
    'Sponsorship',
    'Sponsorship Amount',
    'Total Amount',
    'Payment Method',
    'Payment Status',
    'Payment Reference',
    'Message',
]

_token_cache = {'access_token': None, 'expires_at': 0}
_token_lock = threading.Lock()


def is_sheets_configured():
    """Check if Google Sheets credentials are configured"""
    return bool(SPREADSHEET_ID and SERVICE_ACCOUNT_EMAIL and PRIVATE_KEY)


def get_access_token():
    """
    Exchange a signed service-account assertion for an OAuth access token.
    Tokens are cached until shortly before they expire.
    """
    with _token_lock:
        now = int(time.time())
        if _token_cache['access_token'] and _token_cache['expires_at'] - 60 > now:
            return _token_cache['access_token']

        assertion = jwt.encode(
            {
                'iss': SERVICE_ACCOUNT_EMAIL,
                'scope': SCOPE,
                'aud': TOKEN_URL,
                'iat': now,
                'exp': now + 3600,
            },
            PRIVATE_KEY,
            algorithm='RS256'
        )

        response = requests.post(
            TOKEN_URL,
            data={
                'grant_type': 'urn:ietf:params:oauth:grant-type:jwt-bearer',
                'assertion': assertion,
            },
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
        payload = response.json()

        _token_cache['access_token'] = payload['access_token']
        _token_cache['expires_at'] = now + int(payload.get('expires_in', 3600))
        return _token_cache['access_token']


def _headers():
    return {'Authorization': f'Bearer {get_access_token()}'}


def _values_url(range_name, action=''):
    return f"{SHEETS_API_URL}/{SPREADSHEET_ID}/values/{quote(range_name, safe='')}{action}"


def _format_timestamp(value):
    if not value:
        return datetime.now().strftime('%m/%d/%Y, %I:%M:%S %p')
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime('%m/%d/%Y, %I:%M:%S %p')


def append_row(range_name, row):
    """
    Append one row to a sheet range.

    Returns:
        dict: Result with 'success' boolean and optional 'error'
    """
    if not is_sheets_configured():
        logger.warning("Google Sheets not configured - skipping sync")
        return {'success': False, 'error': 'Google Sheets not configured'}

    try:
        response = requests.post(
            _values_url(range_name, ':append'),
            params={'valueInputOption': 'USER_ENTERED', 'insertDataOption': 'INSERT_ROWS'},
            json={'values': [row]},
            headers=_headers(),
            timeout=REQUEST_TIMEOUT
        )

        if response.status_code == 200:
            logger.info(f"Appended row to {range_name}")
            return {'success': True}

        logger.error(f"Google Sheets append failed for {range_name}: HTTP {response.status_code} - {response.text[:200]}")
        return {'success': False, 'error': f'Sheets API returned {response.status_code}'}

    except requests.exceptions.Timeout:
        logger.error(f"Google Sheets API timeout for {range_name}")
        return {'success': False, 'error': 'Sheets request timed out'}
    except Exception as e:
        logger.error(f"Error appending to {range_name}: {e}", exc_info=True)
        return {'success': False, 'error': str(e)}


def ensure_sheet_exists(sheet_name, headers=None):
    """
    Make sure a tab exists, creating it with a bold frozen header row if not.

    Returns:
        bool: True when the tab is ready for appends
    """
    if not is_sheets_configured():
        return False

    headers = headers or EVENT_SHEET_HEADERS

    try:
        response = requests.get(
            f"{SHEETS_API_URL}/{SPREADSHEET_ID}",
            params={'fields': 'sheets.properties'},
            headers=_headers(),
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()

        titles = {
            sheet.get('properties', {}).get('title')
            for sheet in response.json().get('sheets', [])
        }
        if sheet_name in titles:
            return True

        created = requests.post(
            f"{SHEETS_API_URL}/{SPREADSHEET_ID}:batchUpdate",
            json={'requests': [{'addSheet': {'properties': {'title': sheet_name}}}]},
            headers=_headers(),
            timeout=REQUEST_TIMEOUT
        )
        created.raise_for_status()

        replies = created.json().get('replies') or [{}]
        sheet_id = replies[0].get('addSheet', {}).get('properties', {}).get('sheetId')

        header_response = requests.post(
            f"{SHEETS_API_URL}/{SPREADSHEET_ID}/values:batchUpdate",
            json={
                'valueInputOption': 'USER_ENTERED',
                'data': [{'range': f'{sheet_name}!A1', 'values': [headers]}],
            },
            headers=_headers(),
            timeout=REQUEST_TIMEOUT
        )
        header_response.raise_for_status()

        if sheet_id is not None:
            requests.post(
                f"{SHEETS_API_URL}/{SPREADSHEET_ID}:batchUpdate",
                json={'requests': [
                    {
                        'repeatCell': {
                            'range': {'sheetId': sheet_id, 'startRowIndex': 0, 'endRowIndex': 1},
                            'cell': {'userEnteredFormat': {'textFormat': {'bold': True}}},
                            'fields': 'userEnteredFormat.textFormat',
                        }
                    },
                    {
                        'updateSheetProperties': {
                            'properties': {'sheetId': sheet_id, 'gridProperties': {'frozenRowCount': 1}},
                            'fields': 'gridProperties.frozenRowCount',
                        }
                    },
                ]},
                headers=_headers(),
                timeout=REQUEST_TIMEOUT
            )

        logger.info(f"Created new sheet tab: {sheet_name}")
        return True

    except Exception as e:
        logger.error(f"Failed to ensure sheet exists: {sheet_name}: {e}", exc_info=True)
        return False


def sync_donation(donation):
    """Mirror a donation (as a dict) to the Donations tab"""
    row = [
        donation.get('id'),
        donation.get('amount'),
        'Yes' if donation.get('is_recurring') else 'No',
        donation.get('recurring_frequency') or '',
        donation.get('name'),
        donation.get('email'),
        donation.get('phone') or '',
        donation.get('honor_name') or '',
        donation.get('honor_email') or '',
        donation.get('sponsorship') or '',
        donation.get('message') or '',
        donation.get('payment_status'),
        donation.get('payment_reference') or '',
        _format_timestamp(donation.get('created_at')),
    ]
    return append_row(DONATIONS_RANGE, row)


def sync_contact(signup):
    """Mirror a contact form submission (as a dict) to the Email Signups tab"""
    row = [
        signup.get('id'),
        signup.get('name'),
        signup.get('email'),
        signup.get('phone') or '',
        signup.get('subject') or '',
        signup.get('message') or '',
        _format_timestamp(signup.get('created_at')),
        signup.get('source') or 'contact_form',
    ]
    return append_row(SIGNUPS_RANGE, row)


def describe_attendees(name, adults, kids, guests):
    """Single-cell attendee summary for the event sheet"""
    if guests:
        listed = '; '.join(
            f"{g['name']} ({g['email']})" if g.get('email') else g['name']
            for g in guests
        )
        return f"{name}; {listed}"

    summary = name
    if adults > 1:
        summary += f" + {adults - 1} adults"
    if kids > 0:
        summary += f" + {kids} kids"
    return summary


def append_event_registration(sheet_name, row):
    """Append a registration row to an event tab, creating the tab if needed"""
    if not is_sheets_configured():
        logger.warning("Google Sheets not configured - skipping registration sync")
        return {'success': False, 'error': 'Google Sheets not configured'}

    if not ensure_sheet_exists(sheet_name, EVENT_SHEET_HEADERS):
        return {'success': False, 'error': 'Failed to prepare sheet'}

    return append_row(f'{sheet_name}!A:R', row)


def sync_event_registration(event_slug, registration):
    """Mirror a registration (as a dict) to its event's tab"""
    adults = registration.get('adults') or 0
    kids = registration.get('kids') or 0
    row = [
        registration.get('id'),
        _format_timestamp(registration.get('created_at')),
        registration.get('name'),
        registration.get('email'),
        registration.get('phone') or '',
        '',  # Spouse Name
        '',  # Spouse Email
        '',  # Spouse Phone
        adults,
        kids,
        describe_attendees(registration.get('name'), adults, kids, registration.get('guests') or []),
        registration.get('sponsorship_name') or 'None',
        registration.get('sponsorship_price') or 0,
        registration.get('subtotal') or 0,
        registration.get('payment_method') or 'online',
        registration.get('payment_status'),
        registration.get('payment_reference') or '',
        registration.get('message') or '',
    ]
    return append_event_registration(slug_to_sheet_name(event_slug), row)
