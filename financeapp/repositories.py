from django.utils import timezone

from .models import PayoutRequest


class PayoutRequestRepository:

    @staticmethod
    def find_by_id(payout_id):
        try:
            return PayoutRequest.objects.select_related('user').get(pk=payout_id)
        except (PayoutRequest.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def create(user, amount, fee):
        return PayoutRequest.objects.create(user=user, amount=amount, fee=fee, status='pending')

    @staticmethod
    def mark_processed(payout_id):
        """pending -> processed as a single conditional update; returns rows changed"""
        return PayoutRequest.objects.filter(pk=payout_id, status='pending').update(
            status='processed',
            processed_at=timezone.now(),
        )

    @staticmethod
    def for_user(user):
        return PayoutRequest.objects.filter(user=user).order_by('-created_at')
