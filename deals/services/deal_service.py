import logging

from django.core.cache import cache
from django.db import transaction

from core.exceptions import (
    ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError, UpstreamError,
)
from core.repositories import ProposalRepository, UserRepository
from financeapp.config import get_marketplace_config
from financeapp.money import round_money, split_commission
from financeapp.services.ledger import WalletLedger
from ..gateway import get_escrow_gateway
from ..repositories import DealRepository

logger = logging.getLogger(__name__)

WEBHOOK_EVENT_TTL = 60 * 60 * 24
ESCROW_SUCCESS_EVENTS = ('order.paid', 'payment.captured')


def release_to_freelancer(deal, gross_amount, commission_rate, reason):
    """
    Move ``gross_amount`` of the deal's escrow to the freelancer net of commission.
    Writes escrow_release (gross), credit (net, wallet leg) and fee (commission).
    Must run inside the caller's atomic block.
    """
    platform_fee, freelancer_amount = split_commission(gross_amount, commission_rate)
    wallet = WalletLedger.ensure_wallet(deal.receiver, currency=deal.currency)
    if wallet.currency != deal.currency:
        raise InvalidStateError(
            f"Freelancer wallet is held in {wallet.currency}, deal #{deal.id} is in {deal.currency}"
        )

    WalletLedger.record(gross_amount, 'escrow_release', f"{reason} for deal #{deal.id}", deal=deal)
    WalletLedger.credit(wallet, freelancer_amount, f"Earnings from deal #{deal.id}", deal=deal)
    WalletLedger.record(platform_fee, 'fee', f"Platform commission for deal #{deal.id}", deal=deal)
    return platform_fee, freelancer_amount


class DealService:
    """Creation, escrow funding and confirmation of deals"""

    def __init__(self, config=None, gateway=None, webhook_secret=None,
                 users=None, proposals=None, deals=None):
        self.config = config or get_marketplace_config()
        self._gateway = gateway
        self.webhook_secret = webhook_secret
        self.users = users or UserRepository()
        self.proposals = proposals or ProposalRepository()
        self.deals = deals or DealRepository()

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_escrow_gateway()
        return self._gateway

    def create_deal(self, user_id, proposal_id, amount, currency=None):
        user = self.users.get(user_id)
        if user.role != 'client':
            raise ForbiddenError('Only clients can create deals')

        try:
            amount = round_money(amount)
        except ValueError:
            raise InvalidInputError('Amount must be a number')
        if amount <= 0:
            raise InvalidInputError('Amount must be positive')

        currency = str(currency or self.config.default_currency).strip().upper()
        if currency not in self.config.supported_currencies:
            raise InvalidInputError(f"Unsupported currency: {currency}")

        proposal = self.proposals.find_by_id(proposal_id)
        if proposal is None:
            raise NotFoundError('Proposal not found')
        if proposal.project.client_id != user.id:
            raise ForbiddenError('You can only create deals for your own projects')

        # Wallets hold a single currency and nothing converts between them
        receiver_wallet = WalletLedger.find_wallet(proposal.freelancer)
        if receiver_wallet is not None and receiver_wallet.currency != currency:
            raise InvalidInputError(
                f"Freelancer is paid in {receiver_wallet.currency}; deals must use the same currency"
            )

        # Resolve the backend before writing anything so misconfiguration leaves no row behind
        gateway = self.gateway

        deal = self.deals.create(
            project=proposal.project,
            proposal=proposal,
            sender=user,
            receiver=proposal.freelancer,
            amount=amount,
            currency=currency,
            status='created',
        )

        try:
            if not user.gateway_customer_id:
                customer_id = gateway.create_customer(user)
                self.users.set_gateway_customer_id(user, customer_id)
            intent = gateway.create_payment_intent(
                amount, currency, user.gateway_customer_id,
                {'deal_id': deal.id, 'proposal_id': proposal.id},
            )
            self.deals.set_escrow_payment_id(deal, intent.id)
        except Exception as e:
            self.deals.delete(deal)
            logger.error(f"Escrow setup failed for deal {deal.id}, deal removed: {e}")
            if isinstance(e, UpstreamError):
                raise
            raise UpstreamError(str(e)) from e

        logger.info(f"Deal {deal.id} created by client {user.id} for {amount} {currency} ({intent.id})")
        return deal, intent

    def handle_payment_success(self, deal_id):
        """
        created -> escrowed. Returns True when the deal moved; replays and
        deals already past 'created' are a no-op.
        """
        if self.deals.mark_escrowed(deal_id):
            logger.info(f"Deal {deal_id} escrowed")
            return True
        logger.warning(f"Ignored escrow confirmation for deal {deal_id}: not in created status")
        return False

    def handle_webhook(self, raw_body, signature, event_id=None):
        event = self.gateway.verify_webhook(raw_body, signature, self.webhook_secret)
        delivery_id = event_id or event.id

        if delivery_id and not cache.add(f"escrow-webhook:{delivery_id}", True, WEBHOOK_EVENT_TTL):
            logger.warning(f"Duplicate webhook delivery {delivery_id} ignored")
            return {'status': 'duplicate', 'event': event.type}

        try:
            result = self._dispatch(event)
        except Exception:
            if delivery_id:
                cache.delete(f"escrow-webhook:{delivery_id}")
            raise
        return {'event': event.type, **result}

    def _dispatch(self, event):
        if event.type not in ESCROW_SUCCESS_EVENTS:
            logger.info(f"Unhandled webhook event {event.type}")
            return {'status': 'ignored'}

        deal = self._find_deal_for_event(event)
        if deal is None:
            logger.warning(f"Webhook {event.type} does not reference a known deal")
            return {'status': 'ignored'}

        moved = self.handle_payment_success(deal.id)
        return {'status': 'escrowed' if moved else 'noop', 'deal_id': deal.id}

    def _find_deal_for_event(self, event):
        order = event.entity('order')
        payment = event.entity('payment')

        for notes in (order.get('notes'), payment.get('notes')):
            if isinstance(notes, dict) and notes.get('deal_id'):
                deal = self.deals.find_by_id(notes['deal_id'])
                if deal is not None:
                    return deal

        order_id = order.get('id') or payment.get('order_id')
        if order_id:
            return self.deals.find_by_escrow_payment_id(order_id)
        return None

    def confirm_deal(self, deal_id, user_id):
        deal = self.deals.get(deal_id)
        if deal.sender_id != self.users.get(user_id).id:
            raise ForbiddenError('Only the client of this deal can confirm it')
        if deal.status != 'escrowed':
            raise InvalidStateError('Deal must be escrowed to confirm')

        with transaction.atomic():
            if not self.deals.transition(deal.id, ['escrowed'], 'released'):
                raise InvalidStateError('Deal must be escrowed to confirm')
            platform_fee, freelancer_amount = release_to_freelancer(
                deal, deal.amount, self.config.commission_rate, 'Escrow released',
            )

        deal.refresh_from_db()
        logger.info(
            f"Deal {deal.id} released: freelancer {deal.receiver_id} credited {freelancer_amount}, "
            f"platform fee {platform_fee}"
        )
        return {'deal': deal, 'platform_fee': platform_fee, 'freelancer_amount': freelancer_amount}

    def get_deal(self, deal_id, user_id):
        user = self.users.get(user_id)
        deal = self.deals.get(deal_id)
        if not deal.is_party(user) and user.role != 'admin':
            raise ForbiddenError('Access denied')
        return deal

    def list_deals(self, user_id):
        return self.deals.for_user(self.users.get(user_id))
