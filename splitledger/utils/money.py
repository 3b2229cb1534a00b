from decimal import Decimal, ROUND_HALF_EVEN
from typing import Union

# Single tolerance for every currency comparison in the ledger
EPSILON = Decimal('0.01')

CENTS = Decimal('0.01')

ZERO = Decimal('0.00')

# Largest value a DECIMAL(12, 2) column holds
MAX_AMOUNT = Decimal('9999999999.99')


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Floats go through str() so that 0.1 becomes Decimal('0.1') rather than
    its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_decimal(value: Union[Decimal, int, float, str], precision: Decimal = CENTS) -> Decimal:
    """
    Round a value to currency precision.

    Example:
        >>> round_decimal(Decimal("43.333333"))
        Decimal('43.33')
    """
    return to_decimal(value).quantize(precision, rounding=ROUND_HALF_EVEN)
