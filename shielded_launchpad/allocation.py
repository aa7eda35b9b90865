"""Fixed-point amount handling and token allocation"""
import re
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from shielded_launchpad.errors import ValidationError

# Stablecoin amounts and prices carry 6 fractional digits, project tokens 18
CURRENCY_DECIMALS = 6
TOKEN_DECIMALS = 18

# Contribution limits stay far below the 64-bit range of the stored raised total
MAX_CONTRIBUTION = Decimal(10) ** 9

# Enough digits for any 256-bit base unit count
_PRECISION = 80

_PLAIN_DECIMAL = re.compile(r"^[0-9]+(\.[0-9]+)?$")

Amount = Union[str, int, Decimal]

def to_decimal(value: Amount) -> Decimal:
    """Convert a decimal string, int or Decimal into a finite, non-negative Decimal"""
    if isinstance(value, (float, bool)):
        raise ValidationError(f"Amounts must be decimal strings, got {type(value).__name__}")
    try:
        if isinstance(value, str):
            value = value.strip()
            if not _PLAIN_DECIMAL.match(value):
                raise ValidationError(f"Invalid decimal amount: {value!r}")
        number = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid decimal amount: {value!r}")
    if not number.is_finite():
        raise ValidationError(f"Invalid decimal amount: {value!r}")
    if number < 0:
        raise ValidationError(f"Amount must not be negative: {value!r}")
    return number

def parse_units(value: Amount, decimals: int) -> int:
    """
    Convert a decimal amount into an integer count of base units.

    Args:
        value: Decimal string such as "1000.5"
        decimals: Number of fractional digits of the unit

    Returns:
        Integer base units, e.g. parse_units("1.5", 6) == 1500000

    Raises:
        ValidationError: If the value is not a plain decimal or carries more
            fractional digits than the unit supports
    """
    number = to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = number.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(f"Amount {value!r} has more than {decimals} fractional digits")
        return int(scaled)

def format_units(units: int, decimals: int) -> Decimal:
    """Convert integer base units back into an exact Decimal"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(units).scaleb(-decimals)

def to_display(value: Decimal) -> str:
    """Render a Decimal for the outside world: no exponent, at least one fractional digit"""
    text = format(value, 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return f"{text}.0" if '.' not in text else text

def tokens_allocated(amount: Amount, price_per_token: Amount) -> Decimal:
    """
    Tokens a contribution buys: amount * 10^18 / price in base units.

    Both inputs are read with CURRENCY_DECIMALS. The division truncates
    toward zero; fractions of the smallest token unit are never rounded up.

    Raises:
        ValidationError: If either input is malformed or the price is zero
    """
    amount_units = parse_units(amount, CURRENCY_DECIMALS)
    price_units = parse_units(price_per_token, CURRENCY_DECIMALS)
    if price_units == 0:
        raise ValidationError("Price per token must be greater than zero")

    allocated_units = amount_units * 10 ** TOKEN_DECIMALS // price_units
    return format_units(allocated_units, TOKEN_DECIMALS)
