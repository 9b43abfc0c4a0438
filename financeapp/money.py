from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')


def to_decimal(value):
    """Coerce request/config values to a finite Decimal without float artefacts"""
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f"Invalid monetary amount: {value!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return value


def round_money(value):
    """Round to cents, half-up"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value):
    """Major units (e.g. dollars) to the integer minor units the gateway expects"""
    return int((round_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def split_commission(amount, commission_rate):
    """
    Split a gross amount into (platform_fee, freelancer_amount).
    Both parts are rounded to cents and never negative.
    """
    amount = round_money(amount)
    platform_fee = round_money(amount * to_decimal(commission_rate))
    freelancer_amount = round_money(max(amount - platform_fee, Decimal('0')))
    return platform_fee, freelancer_amount
