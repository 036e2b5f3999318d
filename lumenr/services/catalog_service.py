"""Catalog lookup for product and service line items (owner-scoped)."""
import logging
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from lumenr.exceptions import NotFoundError, ValidationError
from lumenr.models import Product, Service
from lumenr.services.line_items import LineItem, LineItemKind

logger = logging.getLogger(__name__)

CATALOG_MODELS = {
    LineItemKind.PRODUCT: Product,
    LineItemKind.SERVICE: Service,
}


class CatalogEntry(NamedTuple):
    id: int
    kind: LineItemKind
    name: str
    description: str
    unit_price: Decimal
    active: bool


def _to_entry(kind: LineItemKind, row) -> CatalogEntry:
    return CatalogEntry(
        id=row.id,
        kind=kind,
        name=row.name,
        description=row.description or '',
        unit_price=row.unit_price,
        active=bool(row.active),
    )


class CatalogService:
    """Read-only access to one user's product and service catalogs."""

    def __init__(self, session: Session, principal):
        self.session = session
        self.principal = principal

    def lookup(self, kind, ref: int, active_only: bool = True) -> Optional[CatalogEntry]:
        """Return the entry for ``(kind, ref)`` owned by the principal, or None."""
        kind = LineItemKind(kind)
        model = CATALOG_MODELS[kind]
        query = self.session.query(model).filter(
            model.id == ref,
            model.user_id == self.principal.user_id,
        )
        if active_only:
            query = query.filter(model.active.is_(True))
        row = query.first()
        return _to_entry(kind, row) if row else None

    def resolver(self):
        """Callable for LineItemsEditor: only active entries are selectable."""
        return lambda kind, ref: self.lookup(kind, ref, active_only=True)

    def list_rows(self, kind, active_only: bool = True) -> List:
        """Catalog rows of one kind, ordered by name."""
        kind = LineItemKind(kind)
        model = CATALOG_MODELS[kind]
        query = self.session.query(model).filter(model.user_id == self.principal.user_id)
        if active_only:
            query = query.filter(model.active.is_(True))
        return query.order_by(model.name).all()

    def validate_references(self, items: Iterable[LineItem],
                            existing_items: Iterable[LineItem] = ()) -> None:
        """
        Check every catalog reference on ``items``.

        A reference must exist in the owner's catalog. It must also be active
        unless the same (kind, ref) was already on the document, so entries
        deactivated later stay valid on existing quotes.

        Raises:
            NotFoundError: unknown or foreign catalog entry.
            ValidationError: newly selected inactive entry.
        """
        already_referenced = {
            (item.kind, item.catalog_ref)
            for item in existing_items
            if item.catalog_ref is not None
        }
        for item in items:
            if item.catalog_ref is None:
                continue
            entry = self.lookup(item.kind, item.catalog_ref, active_only=False)
            if entry is None:
                raise NotFoundError(
                    f'{item.kind.value.capitalize()} {item.catalog_ref} not found'
                )
            if not entry.active and (item.kind, item.catalog_ref) not in already_referenced:
                logger.info(
                    f"[CATALOG] user={self.principal.user_id} rejected inactive "
                    f"{item.kind.value} {item.catalog_ref}"
                )
                raise ValidationError(
                    f'{item.kind.value.capitalize()} "{entry.name}" is inactive and cannot be selected'
                )
