import logging

from django.db import transaction

from core.exceptions import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from core.repositories import UserRepository
from ..config import get_marketplace_config
from ..repositories import PayoutRequestRepository
from ..money import round_money, to_decimal
from .ledger import WalletLedger

logger = logging.getLogger(__name__)


class PayoutService:
    """Withdrawal of wallet balance by freelancers, processed later by an admin"""

    def __init__(self, config=None, users=None, payouts=None):
        self.config = config or get_marketplace_config()
        self.users = users or UserRepository()
        self.payouts = payouts or PayoutRequestRepository()

    def calculate_fee(self, amount):
        return round_money(to_decimal(amount) * self.config.payout_fee_rate)

    def create_payout_request(self, user_id, amount):
        user = self.users.get(user_id)
        if user.role != 'freelancer':
            raise ForbiddenError('Only freelancers can request payouts')

        try:
            amount = round_money(amount)
        except ValueError:
            raise InvalidInputError('Amount must be a number')
        if amount <= 0:
            raise InvalidInputError('Amount must be positive')

        wallet = WalletLedger.get_wallet(user)
        if wallet.balance < amount:
            raise InvalidStateError('Insufficient balance for payout')

        fee = self.calculate_fee(amount)

        with transaction.atomic():
            payout = self.payouts.create(user, amount, fee)
            # The fee is carved out of the withdrawn amount, so the wallet is debited once
            WalletLedger.debit(
                wallet, amount, 'withdrawal',
                f"Payout request #{payout.id}",
                payout_request=payout,
                insufficient_message='Insufficient balance for payout',
            )
            WalletLedger.record(fee, 'fee', f"Payout fee for request #{payout.id}", payout_request=payout)

        logger.info(f"Payout request {payout.id} created for user {user.id}: {amount} (fee {fee})")
        return payout

    def process_payout(self, payout_id, admin_id):
        admin = self.users.get(admin_id)
        if admin.role != 'admin':
            raise ForbiddenError('Only admins can process payouts')

        payout = self.payouts.find_by_id(payout_id)
        if payout is None:
            raise NotFoundError('Payout request not found')

        if not self.payouts.mark_processed(payout.pk):
            raise InvalidStateError('Payout request is not in pending status')

        payout.refresh_from_db()
        logger.info(f"Payout request {payout.id} processed by admin {admin.id}")
        return payout
