"""
Currency conversion helpers.

Amounts are stored and sent over the wire as integer milli-units
(1000 milli-units = 1.00). Users see and type decimal amounts. Everything
here is pure and works on Decimal internally so that a float like 19.99
converts to exactly 19990.

Rounding: to_milliunits rounds half away from zero (ROUND_HALF_UP in the
decimal module), so 0.0005 -> 1 and -0.0005 -> -1.

The factor of 1000 leaves one digit of headroom over two-digit currencies;
amounts with more than three fractional digits do not survive a round trip.
"""

from decimal import MAX_EMAX, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Union

MILLIUNITS_PER_UNIT = 1000

# Largest stored amount in either direction, about one trillion units. Sums of
# many such rows still fit a 64-bit column.
MAX_MILLIUNITS = 10 ** 15

Number = Union[int, float, str, Decimal]


def _to_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, str):
        return parse_amount(amount)
    if isinstance(amount, float):
        # str() gives the shortest repr, so 19.99 stays 19.99
        return Decimal(str(amount))
    return Decimal(amount)


def to_milliunits(amount: Number) -> int:
    """
    Convert a decimal amount to integer milli-units.

    Example:
        to_milliunits(19.99) -> 19990
        to_milliunits(-5) -> -5000

    NaN and infinities are not rounded; they come back as floats for the
    caller to deal with.
    """
    value = _to_decimal(amount)
    if not value.is_finite():
        return float(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + 4)
        ctx.Emax = MAX_EMAX
        scaled = value * MILLIUNITS_PER_UNIT
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def from_milliunits(amount: int) -> float:
    """
    Convert integer milli-units back to a decimal amount.

    Example:
        from_milliunits(19990) -> 19.99
    """
    return amount / MILLIUNITS_PER_UNIT


def amount_in_range(milliunits: int) -> bool:
    return -MAX_MILLIUNITS <= milliunits <= MAX_MILLIUNITS


def parse_amount(text: str) -> Decimal:
    """
    Parse user input like '12.34', '$1,234.50' or '-5' into a Decimal.

    Raises:
        ValueError: when the text is empty, not a number, or not finite
    """
    clean = str(text).replace('$', '').replace(',', '').strip()
    if not clean:
        raise ValueError('Amount is empty')
    try:
        value = Decimal(clean)
    except InvalidOperation:
        raise ValueError(f'Not a number: {text!r}') from None
    if not value.is_finite():
        raise ValueError(f'Not a finite number: {text!r}')
    return value


def format_amount(milliunits: int) -> str:
    """Format milli-units as a dollar string, e.g. -45990 -> '$-45.99'."""
    value = Decimal(milliunits) / MILLIUNITS_PER_UNIT
    return f"${value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"


def calculate_percentage_change(current: int, previous: int) -> float:
    """Percent change from previous to current, to two places; 100 when starting from zero."""
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return round((current - previous) / previous * 100, 2)
