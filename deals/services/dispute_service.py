import logging

from django.db import IntegrityError, transaction

from core.exceptions import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from core.repositories import UserRepository
from financeapp.config import get_marketplace_config
from financeapp.money import round_money
from financeapp.services.ledger import WalletLedger
from ..models import Deal, Dispute
from ..repositories import DealRepository, DisputeRepository
from .deal_service import release_to_freelancer

logger = logging.getLogger(__name__)

RESOLUTIONS = [choice for choice, _ in Dispute.RESOLUTION_CHOICES]


def notify_admins(dispute_id):
    """Best-effort; a broker outage must not undo the dispute"""
    from ..tasks import send_dispute_email, create_admin_notification
    for task in (send_dispute_email, create_admin_notification):
        try:
            task.delay(dispute_id)
        except Exception as e:
            logger.warning(f"Could not enqueue {task.name} for dispute {dispute_id}: {e}")


class DisputeService:

    def __init__(self, config=None, users=None, deals=None, disputes=None):
        self.config = config or get_marketplace_config()
        self.users = users or UserRepository()
        self.deals = deals or DealRepository()
        self.disputes = disputes or DisputeRepository()

    def create_dispute(self, deal_id, user_id, title, description):
        user = self.users.get(user_id)
        deal = self.deals.get(deal_id)
        if not deal.is_party(user):
            raise ForbiddenError('Only parties of the deal can open a dispute')

        title = (title or '').strip()
        description = (description or '').strip()
        if not title or not description:
            raise InvalidInputError('Title and description are required')

        with transaction.atomic():
            deal = self.deals.lock(deal.id)
            if deal.is_terminal:
                raise InvalidStateError(f"Deal is already {deal.status}")
            if deal.status not in Deal.DISPUTABLE_STATUSES:
                raise InvalidStateError(f"Cannot open a dispute on a deal in {deal.status} status")
            if self.disputes.has_open(deal):
                raise InvalidStateError('This deal already has an open dispute')
            try:
                with transaction.atomic():
                    dispute = self.disputes.create(deal, user, title[:255], description)
            except IntegrityError:
                raise InvalidStateError('This deal already has an open dispute')
            self.deals.transition(deal.id, Deal.DISPUTABLE_STATUSES, 'dispute')
            transaction.on_commit(lambda: notify_admins(dispute.id))

        logger.info(f"Dispute {dispute.id} opened on deal {deal.id} by user {user.id}")
        return dispute

    def resolve_dispute(self, dispute_id, admin_id, resolution, amount=None):
        admin = self.users.get(admin_id)
        if admin.role != 'admin':
            raise ForbiddenError('Only admins can resolve disputes')

        if resolution not in RESOLUTIONS:
            raise InvalidInputError(f"Resolution must be one of: {', '.join(RESOLUTIONS)}")

        dispute = self.disputes.find_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError('Dispute not found')
        if dispute.status != 'open':
            raise InvalidStateError('Dispute is already resolved')

        awarded = None
        if resolution == 'partial':
            if amount in (None, ''):
                raise InvalidInputError('Amount is required for a partial resolution')
            try:
                awarded = round_money(amount)
            except ValueError:
                raise InvalidInputError('Amount must be a number')
            if not (0 < awarded < dispute.deal.amount):
                raise InvalidStateError('Partial amount must be greater than 0 and less than the deal amount')

        platform_fee = freelancer_amount = None
        with transaction.atomic():
            dispute = self.disputes.lock(dispute.id)
            if dispute.status != 'open':
                raise InvalidStateError('Dispute is already resolved')
            deal = self.deals.lock(dispute.deal_id)
            if deal.status != 'dispute':
                raise InvalidStateError('Deal is not under dispute')

            self.disputes.mark_resolved(dispute, resolution, admin, awarded)
            new_status = 'released' if resolution == 'release' else 'cancelled'
            self.deals.transition(deal.id, ['dispute'], new_status)

            if resolution == 'release':
                platform_fee, freelancer_amount = release_to_freelancer(
                    deal, deal.amount, self.config.commission_rate, 'Dispute resolved: escrow released',
                )
            elif resolution == 'partial':
                platform_fee, freelancer_amount = release_to_freelancer(
                    deal, awarded, self.config.commission_rate, 'Dispute resolved: partial release',
                )
            else:
                WalletLedger.record(
                    deal.amount, 'escrow_release',
                    f"Dispute resolved: escrow returned to client for deal #{deal.id}",
                    deal=deal,
                )

        deal.refresh_from_db()
        logger.info(f"Dispute {dispute.id} resolved as {resolution} by admin {admin.id}; deal {deal.id} is {deal.status}")
        return {
            'dispute': dispute,
            'deal': deal,
            'platform_fee': platform_fee,
            'freelancer_amount': freelancer_amount,
        }
