"""
Escrow payment gateway capability.

The deal engine only ever talks to an ``EscrowGateway``: create a customer,
create a payment intent (a Razorpay order) and verify a webhook delivery.
``RazorpayEscrowGateway`` is the production backend; ``InMemoryEscrowGateway``
keeps everything in process for tests and local development.
"""
import hashlib
import hmac
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from django.conf import settings

from core.exceptions import IntegrityFailure, UpstreamError
from financeapp.money import to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    # Value the client needs to complete checkout out-of-band
    client_secret: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class WebhookEvent:
    type: str
    payload: dict = field(default_factory=dict)
    id: str = ''

    def entity(self, name):
        return (self.payload.get(name) or {}).get('entity') or {}


def parse_webhook_body(raw_body):
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError):
        raise IntegrityFailure('Webhook body is not valid JSON')
    if not isinstance(data, dict) or not data.get('event'):
        raise IntegrityFailure('Webhook body has no event type')
    return WebhookEvent(type=data['event'], payload=data.get('payload') or {}, id=str(data.get('id') or ''))


def _as_text(raw_body):
    if isinstance(raw_body, bytes):
        return raw_body.decode('utf-8')
    return raw_body


class EscrowGateway(ABC):

    @abstractmethod
    def create_customer(self, user):
        """Return the gateway customer id for ``user``"""

    @abstractmethod
    def create_payment_intent(self, amount, currency, customer_id, metadata):
        """Create a payment for ``amount`` (major units) and return a PaymentIntent"""

    @abstractmethod
    def verify_webhook(self, raw_body, signature, secret):
        """Verify the signature over the raw body and return a WebhookEvent"""


class RazorpayEscrowGateway(EscrowGateway):

    def __init__(self, key_id, key_secret, client=None):
        if not key_id or not key_secret:
            raise UpstreamError('Razorpay credentials are not configured')
        if client is None:
            import razorpay
            client = razorpay.Client(auth=(key_id, key_secret))
        self.key_id = key_id
        self.client = client

    def create_customer(self, user):
        try:
            customer = self.client.customer.create(data={
                'name': user.display_name,
                'email': user.email or '',
                'fail_existing': '0',
                'notes': {'user_id': str(user.id)},
            })
        except Exception as e:
            logger.exception(f"Razorpay customer creation failed for user {user.id}")
            raise UpstreamError(str(e))
        return customer['id']

    def create_payment_intent(self, amount, currency, customer_id, metadata):
        try:
            order = self.client.order.create(data={
                'amount': to_minor_units(amount),
                'currency': currency,
                'payment_capture': 1,
                'notes': {**{k: str(v) for k, v in metadata.items()}, 'customer_id': customer_id},
            })
        except Exception as e:
            logger.exception(f"Razorpay order creation failed for {metadata}")
            raise UpstreamError(str(e))
        # Razorpay checkout is opened with the order id and the public key
        return PaymentIntent(
            id=order['id'],
            client_secret=order['id'],
            amount_minor=order['amount'],
            currency=order['currency'],
        )

    def verify_webhook(self, raw_body, signature, secret):
        if not secret:
            raise IntegrityFailure('Webhook secret is not configured')
        if not signature:
            raise IntegrityFailure('Missing webhook signature')
        import razorpay
        body = _as_text(raw_body)
        try:
            self.client.utility.verify_webhook_signature(body, signature, secret)
        except razorpay.errors.SignatureVerificationError:
            raise IntegrityFailure('Webhook signature mismatch')
        return parse_webhook_body(body)


class InMemoryEscrowGateway(EscrowGateway):
    """Gateway double that signs webhooks the same way Razorpay does (HMAC-SHA256 hex)"""

    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or [])
        self.customers = {}
        self.intents = {}

    def create_customer(self, user):
        if 'create_customer' in self.fail_on:
            raise UpstreamError('Simulated customer failure')
        customer_id = f"cust_{uuid.uuid4().hex[:14]}"
        self.customers[customer_id] = user.id
        return customer_id

    def create_payment_intent(self, amount, currency, customer_id, metadata):
        if 'create_payment_intent' in self.fail_on:
            raise UpstreamError('Simulated payment intent failure')
        intent = PaymentIntent(
            id=f"order_{uuid.uuid4().hex[:14]}",
            client_secret=f"secret_{uuid.uuid4().hex}",
            amount_minor=to_minor_units(amount),
            currency=currency,
        )
        self.intents[intent.id] = {'customer_id': customer_id, 'metadata': dict(metadata), 'intent': intent}
        return intent

    @staticmethod
    def sign(raw_body, secret):
        body = raw_body if isinstance(raw_body, bytes) else raw_body.encode('utf-8')
        return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()

    def verify_webhook(self, raw_body, signature, secret):
        if not secret:
            raise IntegrityFailure('Webhook secret is not configured')
        if not signature:
            raise IntegrityFailure('Missing webhook signature')
        if not hmac.compare_digest(self.sign(raw_body, secret), signature):
            raise IntegrityFailure('Webhook signature mismatch')
        return parse_webhook_body(_as_text(raw_body))


_memory_gateway = None


def get_escrow_gateway():
    """Gateway selected by ESCROW_GATEWAY_BACKEND"""
    global _memory_gateway
    backend = getattr(settings, 'ESCROW_GATEWAY_BACKEND', 'razorpay')
    if backend == 'razorpay':
        return RazorpayEscrowGateway(
            getattr(settings, 'RAZORPAY_KEY_ID', None),
            getattr(settings, 'RAZORPAY_KEY_SECRET', None),
        )
    if backend == 'memory':
        if _memory_gateway is None:
            _memory_gateway = InMemoryEscrowGateway()
        return _memory_gateway
    logger.error(f"Unknown escrow gateway backend: {backend!r}")
    raise UpstreamError(f"Unknown escrow gateway backend: {backend}")
