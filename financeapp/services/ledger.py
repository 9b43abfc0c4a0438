"""
Wallet Ledger primitives.

Balances move only through relative ``F()`` updates issued here, each paired
with a Transaction row. Callers are expected to run inside
``transaction.atomic()`` so the balance change and its audit rows commit
together.
"""
import logging
from decimal import Decimal

from django.db.models import F, Sum, Case, When, Value, DecimalField

from core.exceptions import InvalidStateError, NotFoundError
from ..models import Wallet, Transaction
from ..money import round_money

logger = logging.getLogger(__name__)


class WalletLedger:

    @staticmethod
    def ensure_wallet(user, currency='USD'):
        """Return the user's wallet, creating an empty one on first use"""
        wallet, created = Wallet.objects.get_or_create(
            user=user,
            defaults={'balance': Decimal('0.00'), 'pending': Decimal('0.00'), 'currency': currency},
        )
        if created:
            logger.info(f"Created wallet for user {user.id} in {currency}")
        return wallet

    @staticmethod
    def find_wallet(user):
        return Wallet.objects.filter(user=user).first()

    @staticmethod
    def get_wallet(user):
        wallet = WalletLedger.find_wallet(user)
        if wallet is None:
            raise NotFoundError('Wallet not found')
        return wallet

    @staticmethod
    def record(amount, type, description, wallet=None, deal=None, payout_request=None):
        """Append an audit row; never touches a balance"""
        return Transaction.objects.create(
            amount=round_money(amount),
            type=type,
            description=description,
            wallet=wallet,
            deal=deal,
            payout_request=payout_request,
        )

    @staticmethod
    def credit(wallet, amount, description, deal=None):
        """Increase balance and write the matching credit row"""
        amount = round_money(amount)
        Wallet.objects.filter(pk=wallet.pk).update(balance=F('balance') + amount)
        tx = WalletLedger.record(amount, 'credit', description, wallet=wallet, deal=deal)
        logger.info(f"Credited {amount} to wallet {wallet.pk} ({tx.reference_id})")
        return tx

    @staticmethod
    def debit(wallet, amount, type, description, deal=None, payout_request=None,
              insufficient_message='Insufficient balance'):
        """
        Decrease balance only if it covers ``amount`` and write the matching row.
        The balance check and the decrement are one UPDATE statement.
        """
        amount = round_money(amount)
        updated = Wallet.objects.filter(pk=wallet.pk, balance__gte=amount).update(
            balance=F('balance') - amount
        )
        if not updated:
            raise InvalidStateError(insufficient_message)
        tx = WalletLedger.record(
            amount, type, description,
            wallet=wallet, deal=deal, payout_request=payout_request,
        )
        logger.info(f"Debited {amount} from wallet {wallet.pk} as {type} ({tx.reference_id})")
        return tx

    @staticmethod
    def ledger_balance(wallet):
        """Signed sum of the wallet's legs; equals wallet.balance when the ledger is consistent"""
        signed = Case(
            When(type='credit', then=F('amount')),
            When(type__in=['withdrawal', 'fee'], then=-F('amount')),
            default=Value(Decimal('0.00')),
            output_field=DecimalField(max_digits=14, decimal_places=2),
        )
        total = Transaction.objects.filter(wallet=wallet).aggregate(total=Sum(signed))['total']
        return round_money(total or Decimal('0.00'))

    @staticmethod
    def find_inconsistent_wallets():
        """Wallets whose stored balance differs from their ledger sum"""
        mismatches = []
        for wallet in Wallet.objects.select_related('user').order_by('id'):
            expected = WalletLedger.ledger_balance(wallet)
            if round_money(wallet.balance) != expected:
                mismatches.append((wallet, expected))
        return mismatches
