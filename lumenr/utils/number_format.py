"""Number parsing utilities for money, quantity and percentage inputs."""
from decimal import Decimal, InvalidOperation, ROUND_DOWN

from lumenr.exceptions import ValidationError

TWO_PLACES = Decimal('0.01')
THREE_PLACES = Decimal('0.001')

# Largest value a Numeric(12, 2) money column holds
MAX_AMOUNT = Decimal('9999999999.99')


def _to_decimal(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f'{field} must be a number')
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{field} must be a number')
    if not number.is_finite():
        raise ValidationError(f'{field} must be a finite number')
    return number


def parse_money(value, field: str = 'unitPrice') -> Decimal:
    """
    Parse a monetary amount into a Decimal with exactly 2 decimal places.

    Rules:
    - Accepts int, float, Decimal or numeric strings ("99.99")
    - No negatives
    - At most 2 decimal digits (99.999 is rejected, not rounded)
    - No more than MAX_AMOUNT

    Raises:
        ValidationError: if the value is invalid or empty.
    """
    number = _to_decimal(value, field)

    if number < 0:
        raise ValidationError(f'{field} cannot be negative')

    if number > MAX_AMOUNT:
        raise ValidationError(f'{field} cannot exceed {MAX_AMOUNT}')

    quantized = number.quantize(TWO_PLACES)
    if quantized != number:
        raise ValidationError(f'{field} must have at most 2 decimal places')

    return quantized


def parse_quantity(value, field: str = 'quantity') -> int:
    """Strictly parse a persisted quantity: a whole number >= 1."""
    number = _to_decimal(value, field)
    if number != number.to_integral_value():
        raise ValidationError(f'{field} must be a whole number')
    if number < 1:
        raise ValidationError(f'{field} must be at least 1')
    return int(number)


def coerce_quantity(value) -> int:
    """
    Lenient quantity coercion used at the editing boundary.

    Truncates to an integer the way a number input does; anything
    non-numeric or below 1 becomes 1.
    """
    try:
        number = _to_decimal(value, 'quantity')
    except ValidationError:
        return 1
    whole = int(number.to_integral_value(rounding=ROUND_DOWN))
    return whole if whole >= 1 else 1


def parse_percentage(value, field: str = 'taxRate'):
    """
    Parse an optional percentage in the 0-100 range. None stays None.

    At most 3 decimal places (14.975 is fine, 13.0005 is rejected), which
    is what the stored tax_rate columns keep.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = _to_decimal(value, field)
    if number < 0 or number > 100:
        raise ValidationError(f'{field} must be between 0 and 100')
    if number.quantize(THREE_PLACES) != number:
        raise ValidationError(f'{field} must have at most 3 decimal places')
    return number
