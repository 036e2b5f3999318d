"""Catalog blueprint: products, services and the tax rate table."""
from flask import Blueprint, request

from lumenr.blueprints.common import ok
from lumenr.database import get_session
from lumenr.exceptions import NotFoundError
from lumenr.middleware import require_auth
from lumenr.services.catalog_service import CatalogService
from lumenr.services.line_items import LineItemKind
from lumenr.services.tax_service import find_tax_rate, get_all_tax_rates

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api')


def _include_inactive():
    return request.args.get('includeInactive', '').lower() in ('1', 'true', 'yes')


@catalog_bp.route('/products', methods=['GET'])
@require_auth
def list_products(principal):
    """Products selectable as line items (active only unless includeInactive)."""
    rows = CatalogService(get_session(), principal).list_rows(
        LineItemKind.PRODUCT, active_only=not _include_inactive()
    )
    return ok([row.to_dict() for row in rows])


@catalog_bp.route('/services', methods=['GET'])
@require_auth
def list_services(principal):
    rows = CatalogService(get_session(), principal).list_rows(
        LineItemKind.SERVICE, active_only=not _include_inactive()
    )
    return ok([row.to_dict() for row in rows])


@catalog_bp.route('/tax-rates', methods=['GET'])
@require_auth
def tax_rates(principal):
    """Full table, or one entry for ``?country=&province=``."""
    country = request.args.get('country')
    if not country:
        return ok([rate.to_dict() for rate in get_all_tax_rates()])

    rate = find_tax_rate(country, request.args.get('province'))
    if rate is None:
        raise NotFoundError(f'No tax rate known for {country}')
    return ok(rate.to_dict())
