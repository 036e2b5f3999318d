"""
Formatting helpers for API payloads and PDF documents.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional

CURRENCY_SYMBOLS = {
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'CAD': 'C$',
    'AUD': 'A$',
}


def money_str(value) -> Optional[str]:
    """Decimal amount as a fixed 2-decimal string for JSON ("282.50")."""
    if value is None:
        return None
    return f'{Decimal(str(value)):.2f}'


def iso_or_none(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency, currency)


def money(value: Union[int, float, Decimal, str, None], currency: str = 'USD') -> str:
    """
    Format an amount for display with thousands separators.

    Examples:
        money(1800) -> "$1,800.00"
        money(Decimal('32.5'), 'EUR') -> "€32.50"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    return f'{currency_symbol(currency)}{num:,.2f}'


def date_display(value: Optional[Union[date, datetime]]) -> str:
    """Format a date as 'Oct 19, 2026'."""
    if not value:
        return ""
    return value.strftime('%b %d, %Y')
