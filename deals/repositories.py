from django.db.models import Q
from django.utils import timezone

from core.exceptions import NotFoundError
from .models import Deal, Dispute


class DealRepository:

    @staticmethod
    def find_by_id(deal_id):
        try:
            return Deal.objects.select_related('sender', 'receiver', 'project').get(pk=deal_id)
        except (Deal.DoesNotExist, ValueError, TypeError):
            return None

    def get(self, deal_id):
        deal = self.find_by_id(deal_id)
        if deal is None:
            raise NotFoundError('Deal not found')
        return deal

    @staticmethod
    def lock(deal_id):
        """Row-lock a deal inside the surrounding transaction"""
        try:
            return Deal.objects.select_for_update().get(pk=deal_id)
        except Deal.DoesNotExist:
            raise NotFoundError('Deal not found')

    @staticmethod
    def find_by_escrow_payment_id(escrow_payment_id):
        return Deal.objects.filter(escrow_payment_id=escrow_payment_id).first()

    @staticmethod
    def create(**fields):
        return Deal.objects.create(**fields)

    @staticmethod
    def delete(deal):
        Deal.objects.filter(pk=deal.pk).delete()

    @staticmethod
    def set_escrow_payment_id(deal, escrow_payment_id):
        Deal.objects.filter(pk=deal.pk).update(escrow_payment_id=escrow_payment_id, updated_at=timezone.now())
        deal.escrow_payment_id = escrow_payment_id
        return deal

    @staticmethod
    def transition(deal_id, from_statuses, to_status):
        """Conditional status change; returns the number of rows moved (0 or 1)"""
        return Deal.objects.filter(pk=deal_id, status__in=from_statuses).update(
            status=to_status,
            updated_at=timezone.now(),
        )

    @staticmethod
    def mark_escrowed(deal_id):
        return DealRepository.transition(deal_id, ['created'], 'escrowed')

    @staticmethod
    def released():
        return Deal.objects.filter(status='released').select_related('project')

    @staticmethod
    def for_user(user):
        return Deal.objects.filter(Q(sender=user) | Q(receiver=user)).select_related('sender', 'receiver', 'project').order_by('-created_at')


class DisputeRepository:

    @staticmethod
    def find_by_id(dispute_id):
        try:
            return Dispute.objects.select_related('deal', 'filed_by').get(pk=dispute_id)
        except (Dispute.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def lock(dispute_id):
        try:
            return Dispute.objects.select_for_update().select_related('deal').get(pk=dispute_id)
        except (Dispute.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Dispute not found')

    @staticmethod
    def has_open(deal):
        return Dispute.objects.filter(deal=deal, status='open').exists()

    @staticmethod
    def create(deal, filed_by, title, description):
        return Dispute.objects.create(deal=deal, filed_by=filed_by, title=title, description=description)

    @staticmethod
    def mark_resolved(dispute, resolution, resolver, awarded_amount=None):
        dispute.status = 'resolved'
        dispute.resolution = resolution
        dispute.resolved_by = resolver
        dispute.resolved_at = timezone.now()
        dispute.awarded_amount = awarded_amount
        dispute.save(update_fields=['status', 'resolution', 'resolved_by', 'resolved_at', 'awarded_amount'])
        return dispute
