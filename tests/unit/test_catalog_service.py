"""
Unit tests for catalog lookups used by line items.
"""

import pytest
from decimal import Decimal

from lumenr.exceptions import NotFoundError, ValidationError
from lumenr.services.catalog_service import CatalogService
from lumenr.services.line_items import LineItem, LineItemKind, LineItemsEditor


class TestCatalogService:
    """Owner-scoped catalog resolution."""

    def test_editor_selects_product_from_catalog(self, session, alice, product_panel):
        editor = LineItemsEditor(resolve_catalog=CatalogService(session, alice).resolver())
        item = editor.add_item()

        updated = editor.update_item(item.id, 'catalogRef', product_panel.id)

        assert updated.name == 'LED Panel'
        assert updated.description == '60x60 ceiling panel'
        assert updated.unit_price == Decimal('100.00')

    def test_resolver_skips_inactive_entries(self, session, alice, inactive_product):
        resolve = CatalogService(session, alice).resolver()
        assert resolve(LineItemKind.PRODUCT, inactive_product.id) is None

    def test_lookup_is_owner_scoped(self, session, bob, product_panel):
        assert CatalogService(session, bob).lookup('product', product_panel.id) is None

    def test_lookup_service(self, session, alice, service_install):
        entry = CatalogService(session, alice).lookup(LineItemKind.SERVICE, service_install.id)
        assert entry.unit_price == Decimal('50.00')
        assert entry.kind is LineItemKind.SERVICE

    def test_validate_rejects_new_inactive_reference(self, session, alice, inactive_product):
        item = LineItem(id='a', catalog_ref=inactive_product.id, unit_price=Decimal('12.50'))
        with pytest.raises(ValidationError, match='inactive'):
            CatalogService(session, alice).validate_references([item])

    def test_validate_allows_existing_inactive_reference(self, session, alice, inactive_product):
        item = LineItem(id='a', catalog_ref=inactive_product.id, unit_price=Decimal('12.50'))
        CatalogService(session, alice).validate_references([item], existing_items=[item])

    def test_validate_rejects_unknown_reference(self, session, alice):
        item = LineItem(id='a', kind=LineItemKind.SERVICE, catalog_ref=999, unit_price=Decimal('1.00'))
        with pytest.raises(NotFoundError):
            CatalogService(session, alice).validate_references([item])

    def test_free_text_items_need_no_catalog(self, session, alice):
        CatalogService(session, alice).validate_references([LineItem(id='a', name='Custom work')])
