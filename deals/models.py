from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from decimal import Decimal


class Deal(models.Model):
    """
    Escrow-backed agreement created from an accepted proposal.

    created -> escrowed -> released
    created|escrowed -> dispute -> released|cancelled
    """
    STATUS_CHOICES = [
        ('created', 'Created'),
        ('escrowed', 'Escrowed'),
        ('dispute', 'Dispute'),
        ('released', 'Released'),
        ('cancelled', 'Cancelled'),
    ]
    TERMINAL_STATUSES = ('released', 'cancelled')
    DISPUTABLE_STATUSES = ('created', 'escrowed')

    project = models.ForeignKey('core.Project', on_delete=models.PROTECT, related_name='deals')
    proposal = models.ForeignKey('core.Proposal', on_delete=models.PROTECT, related_name='deals')
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='sent_deals')
    receiver = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='received_deals')
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, default='USD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='created', db_index=True)
    # Order id at the escrow gateway
    escrow_payment_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['sender', 'status'], name='deal_sender_status_idx'),
            models.Index(fields=['receiver', 'status'], name='deal_receiver_status_idx'),
        ]

    def __str__(self):
        return f"Deal #{self.id} - {self.amount} {self.currency} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def is_party(self, user):
        return user.id in (self.sender_id, self.receiver_id)


class Dispute(models.Model):
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('resolved', 'Resolved'),
    ]
    RESOLUTION_CHOICES = [
        ('release', 'Release to freelancer'),
        ('return', 'Return to client'),
        ('partial', 'Partial release'),
    ]

    deal = models.ForeignKey(Deal, on_delete=models.CASCADE, related_name='disputes')
    filed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='filed_disputes')
    title = models.CharField(max_length=255)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open', db_index=True)
    resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True, null=True)
    awarded_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='resolved_disputes'
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['deal'],
                condition=models.Q(status='open'),
                name='unique_open_dispute_per_deal',
            ),
        ]

    def __str__(self):
        return f"Dispute #{self.id} on deal #{self.deal_id} ({self.status})"
