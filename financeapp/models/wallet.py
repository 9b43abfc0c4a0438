from django.db import models
from django.conf import settings
from decimal import Decimal


class Wallet(models.Model):
    """
    Per-user balance. Balances are only changed through
    financeapp.services.ledger, which pairs every change with Transaction rows.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='wallet')
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    pending = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='USD')
    created_at = models.DateTimeField(auto_now_add=True)
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"

    def __str__(self):
        return f"Wallet({self.user.username}) - {self.balance} {self.currency}"

    @property
    def total_balance(self):
        return self.balance + self.pending

    def get_transaction_history(self, limit=None):
        transactions = self.transactions.all().order_by('-created_at', '-id')
        if limit:
            return transactions[:limit]
        return transactions
