import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task
def send_dispute_email(dispute_id):
    """Email the configured administrator about a newly filed dispute"""
    from .models import Dispute

    admin_email = getattr(settings, 'ADMIN_EMAIL', None)
    if not admin_email:
        return "ADMIN_EMAIL not configured, skipped"

    dispute = Dispute.objects.select_related('deal', 'filed_by').get(pk=dispute_id)
    send_mail(
        subject=f"New dispute on deal #{dispute.deal_id}: {dispute.title}",
        message=(
            f"{dispute.filed_by.display_name} opened a dispute on deal #{dispute.deal_id} "
            f"({dispute.deal.amount} {dispute.deal.currency}).\n\n{dispute.description}"
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[admin_email],
        fail_silently=False,
    )
    logger.info(f"Dispute {dispute_id} email sent to {admin_email}")
    return f"Sent dispute {dispute_id} email"


@shared_task
def create_admin_notification(dispute_id):
    """In-app notification for the configured administrator account"""
    from core.models import Notification
    from core.repositories import UserRepository
    from .models import Dispute

    admin_user_id = getattr(settings, 'ADMIN_USER_ID', None)
    if not admin_user_id:
        return "ADMIN_USER_ID not configured, skipped"

    admin = UserRepository.find_by_id(admin_user_id)
    if admin is None:
        logger.warning(f"ADMIN_USER_ID {admin_user_id} does not exist, dispute {dispute_id} not announced")
        return "Admin user not found"

    dispute = Dispute.objects.select_related('deal').get(pk=dispute_id)
    Notification.objects.create(
        user=admin,
        type='Disputes',
        title='New dispute filed',
        notification_text=f"Dispute on deal #{dispute.deal_id}: {dispute.title}",
        priority='urgent',
        related_model_id=dispute.id,
        metadata={'deal_id': dispute.deal_id, 'filed_by': dispute.filed_by_id},
    )
    return f"Notified admin {admin.id} of dispute {dispute_id}"
