import logging

from celery import shared_task

from .services.ledger import WalletLedger

logger = logging.getLogger(__name__)


@shared_task
def audit_wallet_ledger():
    """Nightly check that every wallet balance equals its signed ledger sum"""
    mismatches = WalletLedger.find_inconsistent_wallets()
    for wallet, expected in mismatches:
        logger.error(f"Wallet {wallet.id} of user {wallet.user_id} out of balance: stored {wallet.balance}, ledger {expected}")
    if not mismatches:
        logger.info("Wallet ledger audit passed")
    return len(mismatches)
