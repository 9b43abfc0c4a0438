import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from core.exceptions import ForbiddenError, InvalidStateError
from core.models import User
from core.repositories import UserRepository
from ..config import get_marketplace_config
from .ledger import WalletLedger

logger = logging.getLogger(__name__)


class ProfileBoostService:
    """Paid, stackable visibility boost for freelancer profiles"""

    def __init__(self, config=None, users=None):
        self.config = config or get_marketplace_config()
        self.users = users or UserRepository()

    def get_offer(self):
        return {
            'price': self.config.boost_price,
            'days': self.config.boost_days,
            'currency': self.config.default_currency,
        }

    def purchase(self, user_id, now=None):
        offer = self.get_offer()
        user = self.users.get(user_id)

        if user.role != 'freelancer':
            raise ForbiddenError('Only freelancers can purchase profile boost')

        wallet = WalletLedger.get_wallet(user)
        insufficient = f"Insufficient balance. Required {offer['price']:.2f} {offer['currency']}"
        if wallet.balance < offer['price']:
            raise InvalidStateError(insufficient)

        now = now or timezone.now()
        with transaction.atomic():
            user = User.objects.select_for_update().get(pk=user.pk)
            # An active boost is extended from its current expiry, an expired one restarts now
            base = user.boosted_until if user.boosted_until and user.boosted_until > now else now
            boosted_until = base + timedelta(days=offer['days'])

            WalletLedger.debit(
                wallet, offer['price'], 'fee',
                f"Profile boost ({offer['days']} days)",
                insufficient_message=insufficient,
            )
            self.users.set_boosted_until(user, boosted_until)

        logger.info(f"User {user.id} boosted until {boosted_until.isoformat()}")
        return {
            'charged_amount': offer['price'],
            'currency': wallet.currency or offer['currency'],
            'boosted_until': boosted_until,
            'boost_days': offer['days'],
        }
