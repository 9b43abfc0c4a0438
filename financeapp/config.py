"""
Marketplace rules resolved once from Django settings.

Engines receive a ``MarketplaceConfig`` in their constructor instead of
reading settings, so tests can build any rate combination directly.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache
import math

from django.conf import settings

from .money import round_money

DEFAULT_COMMISSION_RATE = Decimal('0.10')
MAX_COMMISSION_RATE = Decimal('0.9')
DEFAULT_BOOST_PRICE = Decimal('15.00')
DEFAULT_BOOST_DAYS = 14
PAYOUT_FEE_RATE = Decimal('0.025')
DEFAULT_INVITE_LIMITS = {'free': 3, 'pro': 10, 'business': 25}


def _parse_decimal(raw):
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return value if value.is_finite() else None


def parse_commission_rate(raw):
    value = _parse_decimal(raw)
    if value is None:
        return DEFAULT_COMMISSION_RATE
    return min(max(value, Decimal('0')), MAX_COMMISSION_RATE)


def parse_boost_price(raw):
    value = _parse_decimal(raw)
    if value is None or value <= 0:
        return DEFAULT_BOOST_PRICE
    return round_money(value)


def parse_positive_int(raw, fallback):
    value = _parse_decimal(raw)
    if value is None or value < 1:
        return fallback
    return int(math.floor(value))


@dataclass(frozen=True)
class MarketplaceConfig:
    commission_rate: Decimal = DEFAULT_COMMISSION_RATE
    boost_price: Decimal = DEFAULT_BOOST_PRICE
    boost_days: int = DEFAULT_BOOST_DAYS
    payout_fee_rate: Decimal = PAYOUT_FEE_RATE
    invite_limits: dict = field(default_factory=lambda: dict(DEFAULT_INVITE_LIMITS))
    default_currency: str = 'USD'
    supported_currencies: tuple = ('USD', 'EUR', 'GBP', 'INR')
    default_max_proposals: int = 100

    @classmethod
    def from_settings(cls, source=None):
        source = source or settings
        return cls(
            commission_rate=parse_commission_rate(getattr(source, 'PLATFORM_COMMISSION_RATE', None)),
            boost_price=parse_boost_price(getattr(source, 'PROFILE_BOOST_PRICE', None)),
            boost_days=parse_positive_int(getattr(source, 'PROFILE_BOOST_DAYS', None), DEFAULT_BOOST_DAYS),
            invite_limits={
                plan: parse_positive_int(getattr(source, f'INVITE_LIMIT_{plan.upper()}', None), default)
                for plan, default in DEFAULT_INVITE_LIMITS.items()
            },
            default_currency=getattr(source, 'DEFAULT_CURRENCY', 'USD').upper(),
            supported_currencies=tuple(c.upper() for c in getattr(source, 'SUPPORTED_CURRENCIES', cls.supported_currencies)),
            default_max_proposals=parse_positive_int(getattr(source, 'DEFAULT_MAX_PROPOSALS', None), 100),
        )

    def invite_limit_for(self, plan):
        return self.invite_limits.get(normalize_plan(plan), self.invite_limits['free'])


def normalize_plan(plan):
    return plan if plan in ('pro', 'business') else 'free'


@lru_cache(maxsize=1)
def get_marketplace_config():
    """Process-wide config, built on first use"""
    return MarketplaceConfig.from_settings()
