"""
Payment Gateway Configuration
Banquest and Square card processing behind one interface.

Both gateways expose the same two capabilities:
    charge(token, amount, email, ...)          -> result dict
    charge_saved_card(card_ref, amount, email, ...) -> result dict

Result dicts always carry 'success'. Approved charges add 'transaction_id'
(and 'card_ref' when a card was saved); declines add 'error' and 'error_code'.
Declines never raise. Missing configuration raises PaymentConfigurationError
and transport problems raise requests.RequestException; callers catch both.
"""

import os
import time
import uuid
import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROCESSOR = os.environ.get('DEFAULT_PAYMENT_PROCESSOR', 'banquest').lower()
PAYMENT_TIMEOUT_SECONDS = float(os.environ.get('PAYMENT_TIMEOUT_SECONDS', '20'))
USER_AGENT = 'Nonprofit-Website/1.0'

# User-facing messages for the gateway failure taxonomy
ERROR_MESSAGES = {
    'CARD_DECLINED': 'Card was declined. Please try a different card.',
    'INVALID_CARD': 'Invalid card details. Please check and try again.',
    'CVV_FAILURE': 'CVV verification failed. Please check your card details.',
    'INSUFFICIENT_FUNDS': 'Insufficient funds. Please try a different card.',
    'PAYMENT_FAILED': 'Payment failed. Please try again.',
}
GENERIC_FAILURE = 'Failed to process payment. Please try again.'


class PaymentConfigurationError(RuntimeError):
    """Gateway credentials are missing or invalid"""


class UnknownProcessorError(ValueError):
    """Requested processor name has no registered gateway"""


def to_cents(amount) -> int:
    """Convert decimal dollars to integer cents, rounding half up"""
    cents = Decimal(str(amount)) * 100
    return int(cents.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def declined(error_code: str, detail: str = None) -> dict:
    """Build a failure result for a known error code"""
    code = error_code if error_code in ERROR_MESSAGES else 'PAYMENT_FAILED'
    message = ERROR_MESSAGES.get(error_code) or detail or ERROR_MESSAGES['PAYMENT_FAILED']
    return {'success': False, 'error': message, 'error_code': code}


def offline_reference(prefix: str) -> str:
    """Synthetic reference for payments that skip the gateway (check_..., free_...)"""
    return f"{prefix}_{int(time.time() * 1000)}"


class PaymentGateway:
    """Base class for a card-processing backend"""

    name = None
    supports_saved_cards = False

    def is_configured(self) -> bool:
        raise NotImplementedError

    def charge(self, token: str, amount: float, email: str, name: str = None,
               description: str = None, save_card: bool = False, idempotency_key: str = None) -> dict:
        raise NotImplementedError

    def charge_saved_card(self, card_ref: str, amount: float, email: str,
                          description: str = None, idempotency_key: str = None) -> dict:
        # Gateways without stored-card support fail closed
        return {
            'success': False,
            'error': f'Saved-card charging is not supported by {self.name}',
            'error_code': 'PAYMENT_FAILED'
        }

    def _validate(self, source: str, amount: float):
        if not source:
            return {'success': False, 'error': 'Payment token is required', 'error_code': 'INVALID_CARD'}
        if amount is None or amount <= 0:
            return {'success': False, 'error': 'Invalid payment amount', 'error_code': 'PAYMENT_FAILED'}
        return None


class BanquestGateway(PaymentGateway):
    """Banquest Gateway REST API (v2)"""

    name = 'banquest'
    supports_saved_cards = True

    SANDBOX_URL = 'https://api.sandbox.banquestgateway.com/api/v2'
    PRODUCTION_URL = 'https://api.banquestgateway.com/api/v2'

    DECLINE_CODES = {
        'D': 'CARD_DECLINED',
        'E': 'PAYMENT_FAILED',
    }

    def __init__(self, source_key: str = None, pin: str = None, environment: str = None,
                 timeout: float = None):
        self.source_key = source_key if source_key is not None else os.environ.get('BANQUEST_SOURCE_KEY', '')
        self.pin = pin if pin is not None else os.environ.get('BANQUEST_PIN', '')
        self.environment = (environment or os.environ.get('BANQUEST_ENVIRONMENT', 'sandbox')).lower()
        self.timeout = timeout or PAYMENT_TIMEOUT_SECONDS

    @property
    def is_sandbox(self) -> bool:
        return self.environment != 'production'

    @property
    def api_url(self) -> str:
        return self.SANDBOX_URL if self.is_sandbox else self.PRODUCTION_URL

    def is_configured(self) -> bool:
        return bool(self.source_key and self.pin)

    def _post(self, path: str, payload: dict) -> dict:
        if not self.is_configured():
            raise PaymentConfigurationError("Banquest is not configured. Set BANQUEST_SOURCE_KEY and BANQUEST_PIN.")

        response = requests.post(
            f"{self.api_url}{path}",
            json=payload,
            auth=(self.source_key, self.pin),
            headers={'User-Agent': USER_AGENT},
            timeout=self.timeout
        )
        if response.status_code in (401, 403):
            raise PaymentConfigurationError(f"Banquest rejected credentials (HTTP {response.status_code})")
        if response.status_code >= 500:
            response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            response.raise_for_status()
            raise requests.RequestException("Banquest returned a non-JSON response")

    def _interpret(self, result: dict) -> dict:
        approved = result.get('status') == 'Approved' or result.get('result_code') == 'A'
        if approved:
            outcome = {
                'success': True,
                'transaction_id': str(result.get('reference_number') or result.get('refnum')
                                      or result.get('transaction_id') or ''),
                'auth_code': result.get('auth_code'),
            }
            if result.get('card_ref'):
                outcome['card_ref'] = result['card_ref']
            return outcome

        code = self.DECLINE_CODES.get(result.get('result_code'), 'PAYMENT_FAILED')
        reason = str(result.get('error_message') or result.get('status') or '')
        if 'cvv' in reason.lower():
            code = 'CVV_FAILURE'
        elif 'insufficient' in reason.lower():
            code = 'INSUFFICIENT_FUNDS'
        elif 'invalid card' in reason.lower() or 'card number' in reason.lower():
            code = 'INVALID_CARD'
        if code == 'PAYMENT_FAILED' and reason:
            return {'success': False, 'error': reason, 'error_code': code}
        return declined(code)

    def charge(self, token, amount, email, name=None, description=None, save_card=False,
               idempotency_key=None):
        """Charge a single-use token from the hosted tokenization form"""
        invalid = self._validate(token, amount)
        if invalid:
            return invalid

        payload = {
            'amount': float(Decimal(to_cents(amount)) / 100),
            'source': token,
            'save_card': bool(save_card),
            'description': description or 'Online Payment',
            'billing_info': {'email': email},
        }
        if name:
            first_name, _, last_name = name.strip().partition(' ')
            payload['billing_info']['first_name'] = first_name
            payload['billing_info']['last_name'] = last_name
        if idempotency_key:
            payload['transaction_details'] = {'order_number': idempotency_key}

        return self._interpret(self._post('/transactions/charge', payload))

    def charge_saved_card(self, card_ref, amount, email, description=None, idempotency_key=None):
        """Charge a card reference saved by an earlier charge"""
        if not card_ref:
            return {'success': False, 'error': 'No saved card reference', 'error_code': 'INVALID_CARD'}
        invalid = self._validate(card_ref, amount)
        if invalid:
            return invalid

        payload = {
            'amount': float(Decimal(to_cents(amount)) / 100),
            'source': card_ref if card_ref.startswith('nlr-') else f'nlr-{card_ref}',
            'description': description or 'Recurring Payment',
            'billing_info': {'email': email},
        }
        if idempotency_key:
            payload['transaction_details'] = {'order_number': idempotency_key}

        return self._interpret(self._post('/transactions/charge', payload))

    def charge_direct_card(self, card_number, expiry_month, expiry_year, cvv, amount, email,
                           card_name=None, description=None):
        """
        Charge raw card details. Sandbox only: refuses to run against production.
        """
        if not self.is_sandbox:
            raise PaymentConfigurationError("Direct card charging is only available in the Banquest sandbox")

        number = str(card_number or '').replace(' ', '')
        if not number or not cvv or not expiry_month or not expiry_year:
            return declined('INVALID_CARD')

        payload = {
            'amount': float(Decimal(to_cents(amount)) / 100),
            'card': number,
            'expiry_month': int(expiry_month),
            'expiry_year': int(expiry_year),
            'cvv2': str(cvv),
            'name': card_name or '',
            'description': description or 'Sandbox Payment',
            'billing_info': {'email': email},
        }
        return self._interpret(self._post('/transactions/charge', payload))


class SquareGateway(PaymentGateway):
    """Square Payments API. Card-on-file charging is not wired up."""

    name = 'square'
    supports_saved_cards = False

    SANDBOX_URL = 'https://connect.squareupsandbox.com/v2'
    PRODUCTION_URL = 'https://connect.squareup.com/v2'
    API_VERSION = '2025-01-23'

    def __init__(self, access_token: str = None, location_id: str = None, environment: str = None,
                 timeout: float = None):
        self.access_token = access_token if access_token is not None else os.environ.get('SQUARE_ACCESS_TOKEN', '')
        self.location_id = location_id if location_id is not None else os.environ.get('SQUARE_LOCATION_ID', '')
        self.environment = (environment or os.environ.get('SQUARE_ENVIRONMENT', 'sandbox')).lower()
        self.timeout = timeout or PAYMENT_TIMEOUT_SECONDS

    @property
    def api_url(self) -> str:
        return self.PRODUCTION_URL if self.environment == 'production' else self.SANDBOX_URL

    def is_configured(self) -> bool:
        return bool(self.access_token and self.location_id)

    def charge(self, token, amount, email, name=None, description=None, save_card=False,
               idempotency_key=None):
        """Charge a source id produced by the Web Payments SDK"""
        invalid = self._validate(token, amount)
        if invalid:
            return invalid
        if not self.is_configured():
            raise PaymentConfigurationError("Square is not configured. Set SQUARE_ACCESS_TOKEN and SQUARE_LOCATION_ID.")

        payload = {
            'source_id': token,
            'idempotency_key': idempotency_key or str(uuid.uuid4()),
            'amount_money': {'amount': to_cents(amount), 'currency': 'USD'},
            'location_id': self.location_id,
            'note': description or 'Online Payment',
            'buyer_email_address': email,
        }

        response = requests.post(
            f"{self.api_url}/payments",
            json=payload,
            headers={
                'Authorization': f'Bearer {self.access_token}',
                'Square-Version': self.API_VERSION,
                'User-Agent': USER_AGENT,
            },
            timeout=self.timeout
        )
        if response.status_code == 401:
            raise PaymentConfigurationError("Square rejected the access token")
        if response.status_code >= 500:
            response.raise_for_status()

        data = response.json()
        payment = data.get('payment')
        if payment and payment.get('status') in ('COMPLETED', 'APPROVED'):
            return {
                'success': True,
                'transaction_id': payment.get('id'),
                'receipt_url': payment.get('receipt_url'),
            }

        errors = data.get('errors') or []
        if errors:
            first = errors[0]
            return declined(first.get('code'), first.get('detail'))
        return declined('PAYMENT_FAILED')


GATEWAYS = {
    BanquestGateway.name: BanquestGateway,
    SquareGateway.name: SquareGateway,
}


def get_gateway(processor: str = None) -> PaymentGateway:
    """Build the gateway for a processor name, defaulting to Banquest"""
    key = (processor or DEFAULT_PROCESSOR or 'banquest').strip().lower()
    gateway_cls = GATEWAYS.get(key)
    if not gateway_cls:
        raise UnknownProcessorError(f"Invalid payment processor: {processor}")
    return gateway_cls()


def configured_processors() -> dict:
    """Which gateways have credentials present"""
    return {name: cls().is_configured() for name, cls in GATEWAYS.items()}
