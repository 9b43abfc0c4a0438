from django.db import models
from decimal import Decimal
import uuid


class Transaction(models.Model):
    """
    Append-only audit record of money movement.

    Rows with a wallet are wallet legs and explain that wallet's balance;
    rows without one are platform-side bookkeeping (escrow release,
    commission, payout fee).
    """
    TYPE_CHOICES = [
        ('escrow_release', 'Escrow Release'),
        ('credit', 'Credit'),
        ('fee', 'Fee'),
        ('withdrawal', 'Withdrawal'),
    ]

    reference_id = models.CharField(max_length=100, unique=True, editable=False)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    description = models.CharField(max_length=255)
    wallet = models.ForeignKey(
        'financeapp.Wallet',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions'
    )
    deal = models.ForeignKey(
        'deals.Deal',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )
    payout_request = models.ForeignKey(
        'financeapp.PayoutRequest',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['wallet', 'created_at'], name='txn_wallet_created_idx'),
            models.Index(fields=['deal'], name='txn_deal_idx'),
        ]

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.reference_id})"

    @staticmethod
    def generate_reference_id():
        return f"TXN-{uuid.uuid4().hex[:16].upper()}"

    @property
    def signed_amount(self):
        """Effect of this row on its wallet's balance"""
        if self.wallet_id is None:
            return Decimal('0.00')
        if self.type == 'credit':
            return self.amount
        if self.type in ('withdrawal', 'fee'):
            return -self.amount
        return Decimal('0.00')

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Transactions are append-only and cannot be modified")
        if not self.reference_id:
            self.reference_id = self.generate_reference_id()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Transactions are append-only and cannot be deleted")
