from .wallet import Wallet
from .transaction import Transaction
from .payout import PayoutRequest

__all__ = ['Wallet', 'Transaction', 'PayoutRequest']
