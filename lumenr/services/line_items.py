"""
Line-item pricing engine.

Line items are immutable value objects stored as a JSON array on quotes and
invoices. ``line_total`` is a property, so it is recomputed on every update
and can never be written on its own.
"""
import enum
import uuid
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

from lumenr.exceptions import ValidationError
from lumenr.utils.number_format import (
    MAX_AMOUNT, TWO_PLACES, coerce_quantity, parse_money, parse_percentage, parse_quantity
)

ZERO_MONEY = Decimal('0.00')
HUNDRED = Decimal('100')


class LineItemKind(str, enum.Enum):
    """Which catalog a line item is resolved against."""
    PRODUCT = 'product'
    SERVICE = 'service'


# Request payload aliases used by the web front-end
FIELD_ALIASES = {
    'type': 'kind',
    'itemId': 'catalog_ref',
    'catalogRef': 'catalog_ref',
    'price': 'unit_price',
    'unitPrice': 'unit_price',
    'lineTotal': 'line_total',
    'total': 'line_total',
}

EDITABLE_FIELDS = ('kind', 'catalog_ref', 'name', 'description', 'quantity', 'unit_price')


def new_item_id() -> str:
    return f'item-{uuid.uuid4().hex[:12]}'


def parse_kind(value) -> LineItemKind:
    if isinstance(value, LineItemKind):
        return value
    try:
        return LineItemKind(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid line item kind '{value}'. Must be 'product' or 'service'")


def parse_catalog_ref(value) -> Optional[int]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError('catalogRef must be an integer id')
    try:
        ref = int(str(value).strip())
    except ValueError:
        raise ValidationError('catalogRef must be an integer id')
    if ref <= 0:
        raise ValidationError('catalogRef must be a positive id')
    return ref


@dataclass(frozen=True)
class LineItem:
    """One priced entry in a quote or invoice."""
    id: str
    kind: LineItemKind = LineItemKind.PRODUCT
    catalog_ref: Optional[int] = None
    name: str = ''
    description: str = ''
    quantity: int = 1
    unit_price: Decimal = ZERO_MONEY

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind.value,
            'catalogRef': self.catalog_ref,
            'name': self.name,
            'description': self.description,
            'quantity': self.quantity,
            'unitPrice': str(self.unit_price),
            'lineTotal': str(self.line_total),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineItem':
        """
        Build a validated line item from its JSON form.

        Accepts both the stored keys and the front-end aliases
        (``type``, ``itemId``, ``price``). Any ``lineTotal`` in the input
        is ignored and recomputed.

        Raises:
            ValidationError: if a field is missing or out of range.
        """
        if not isinstance(data, dict):
            raise ValidationError('Each line item must be an object')

        normalized = {}
        for key, value in data.items():
            normalized[FIELD_ALIASES.get(key, key)] = value

        item_id = normalized.get('id')
        if item_id is None or str(item_id).strip() == '':
            item_id = new_item_id()

        if 'unit_price' not in normalized:
            raise ValidationError('Each line item must have a unitPrice')

        return cls(
            id=str(item_id),
            kind=parse_kind(normalized.get('kind') or LineItemKind.PRODUCT),
            catalog_ref=parse_catalog_ref(normalized.get('catalog_ref')),
            name=str(normalized.get('name') or ''),
            description=str(normalized.get('description') or ''),
            quantity=parse_quantity(normalized.get('quantity', 1)),
            unit_price=parse_money(normalized['unit_price']),
        )


def parse_line_items(raw) -> List[LineItem]:
    """Validate a JSON array of line items, preserving order."""
    if not isinstance(raw, list):
        raise ValidationError('Items must be a valid JSON array')

    items = []
    seen_ids = set()
    for index, entry in enumerate(raw):
        try:
            item = LineItem.from_dict(entry)
        except ValidationError as e:
            raise ValidationError(f'Line item {index + 1}: {e.message}')
        if item.id in seen_ids:
            raise ValidationError(f"Duplicate line item id '{item.id}'")
        seen_ids.add(item.id)
        items.append(item)
    return items


class Aggregates(NamedTuple):
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def compute_aggregates(items: Iterable[LineItem], tax_rate=None) -> Aggregates:
    """
    Compute subtotal, tax and total for a list of line items.

    ``tax_rate`` is a percentage (13 means 13%). Tax is rounded half-up to
    cents; line totals and the subtotal are never rounded.
    """
    subtotal = sum((item.line_total for item in items), ZERO_MONEY)
    rate = parse_percentage(tax_rate) or Decimal('0')
    if subtotal > MAX_AMOUNT:
        raise ValidationError(f'Total cannot exceed {MAX_AMOUNT}')
    tax = (subtotal * rate / HUNDRED).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    total = subtotal + tax
    if total > MAX_AMOUNT:
        raise ValidationError(f'Total cannot exceed {MAX_AMOUNT}')
    return Aggregates(subtotal=subtotal, tax=tax, total=total)


CatalogResolver = Callable[[LineItemKind, int], Any]


class LineItemsEditor:
    """
    Editable, ordered collection of line items.

    ``resolve_catalog(kind, ref)`` returns an entry with ``name``,
    ``description`` and ``unit_price`` (only selectable, i.e. active,
    entries) or None.
    """

    def __init__(self, items: Optional[Iterable[LineItem]] = None,
                 resolve_catalog: Optional[CatalogResolver] = None):
        self.items: List[LineItem] = list(items or [])
        self._resolve_catalog = resolve_catalog

    def _index_of(self, item_id: str) -> int:
        for i, item in enumerate(self.items):
            if item.id == item_id:
                return i
        return -1

    def get(self, item_id: str) -> Optional[LineItem]:
        idx = self._index_of(item_id)
        return self.items[idx] if idx >= 0 else None

    def add_item(self) -> LineItem:
        item = LineItem(id=new_item_id())
        self.items.append(item)
        return item

    def remove_item(self, item_id: str) -> None:
        idx = self._index_of(item_id)
        if idx >= 0:
            self.items.pop(idx)

    def update_item(self, item_id: str, field: str, value) -> Optional[LineItem]:
        """
        Set one field on an item and reapply the derived-field rules.

        Rules, in order:
        1. ``kind``: clears the catalog selection, name, description and price.
        2. ``catalog_ref``: copies name, description and price from the
           catalog entry when it resolves; otherwise keeps the prior values.
        3. ``line_total`` follows ``quantity * unit_price`` after any change.

        An unknown ``item_id`` is a no-op. Invalid values raise
        ValidationError before anything is changed.
        """
        idx = self._index_of(item_id)
        if idx < 0:
            return None

        field = FIELD_ALIASES.get(field, field)
        if field in ('id', 'line_total'):
            raise ValidationError(f"Line item field '{field}' cannot be edited")
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown line item field '{field}'")

        item = self.items[idx]

        if field == 'kind':
            updated = replace(
                item,
                kind=parse_kind(value),
                catalog_ref=None,
                name='',
                description='',
                unit_price=ZERO_MONEY,
            )
        elif field == 'catalog_ref':
            ref = parse_catalog_ref(value)
            updated = replace(item, catalog_ref=ref)
            entry = None
            if ref is not None and self._resolve_catalog is not None:
                entry = self._resolve_catalog(item.kind, ref)
            if entry is not None:
                updated = replace(
                    updated,
                    name=entry.name,
                    description=entry.description or '',
                    unit_price=parse_money(entry.unit_price),
                )
        elif field == 'quantity':
            updated = replace(item, quantity=coerce_quantity(value))
        elif field == 'unit_price':
            updated = replace(item, unit_price=parse_money(value))
        else:
            updated = replace(item, **{field: str(value or '')})

        self.items[idx] = updated
        return updated

    def aggregates(self, tax_rate=None) -> Aggregates:
        return compute_aggregates(self.items, tax_rate)
