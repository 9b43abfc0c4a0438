from django.core.management.base import BaseCommand

from financeapp.services.ledger import WalletLedger


class Command(BaseCommand):
    help = "Report wallets whose balance does not match the sum of their ledger rows"

    def handle(self, *args, **options):
        mismatches = WalletLedger.find_inconsistent_wallets()

        if not mismatches:
            self.stdout.write(self.style.SUCCESS("All wallets match their ledger"))
            return

        for wallet, expected in mismatches:
            self.stdout.write(self.style.WARNING(
                f"Wallet {wallet.id} ({wallet.user.username}): balance {wallet.balance}, ledger {expected}"
            ))

        self.stdout.write(self.style.ERROR(f"{len(mismatches)} wallet(s) out of balance"))
