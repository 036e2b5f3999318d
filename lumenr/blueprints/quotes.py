"""Quotes blueprint: CRUD, lifecycle actions, conversion and PDF."""
from flask import Blueprint, current_app, request, send_file

from lumenr.blueprints.common import ok, json_body, page_args, business_info
from lumenr.database import get_session
from lumenr.middleware import require_auth
from lumenr.models import QuoteStatus
from lumenr.services import quote_service
from lumenr.services.invoice_service import convert_quote_to_invoice

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')


@quotes_bp.route('', methods=['GET'])
@require_auth
def list_quotes(principal):
    """List quotes (filters: status, search, limit, offset)."""
    limit, offset = page_args()
    quotes = quote_service.list_quotes(
        get_session(),
        principal,
        status=request.args.get('status'),
        search=request.args.get('search'),
        limit=limit,
        offset=offset,
    )
    return ok([quote.to_dict(include_client=True) for quote in quotes])


@quotes_bp.route('', methods=['POST'])
@require_auth
def create_quote(principal):
    quote = quote_service.create_quote(json_body(), get_session(), principal)
    return ok(quote.to_dict(include_client=True), 201)


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
@require_auth
def get_quote(quote_id, principal):
    quote = quote_service.get_quote(quote_id, get_session(), principal)
    return ok(quote.to_dict(include_client=True))


@quotes_bp.route('/<int:quote_id>', methods=['PUT'])
@require_auth
def update_quote(quote_id, principal):
    quote = quote_service.update_quote(quote_id, json_body(), get_session(), principal)
    return ok(quote.to_dict(include_client=True))


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_auth
def delete_quote(quote_id, principal):
    data = quote_service.delete_quote(quote_id, get_session(), principal)
    return ok(data)


def _transition(quote_id, principal, target):
    quote = quote_service.transition_quote(quote_id, target, get_session(), principal)
    return ok(quote.to_dict(include_client=True))


@quotes_bp.route('/<int:quote_id>/send', methods=['POST'])
@require_auth
def send_quote(quote_id, principal):
    """Draft -> sent (requires at least one line item)."""
    return _transition(quote_id, principal, QuoteStatus.SENT)


@quotes_bp.route('/<int:quote_id>/accept', methods=['POST'])
@require_auth
def accept_quote(quote_id, principal):
    return _transition(quote_id, principal, QuoteStatus.ACCEPTED)


@quotes_bp.route('/<int:quote_id>/reject', methods=['POST'])
@require_auth
def reject_quote(quote_id, principal):
    return _transition(quote_id, principal, QuoteStatus.REJECTED)


@quotes_bp.route('/<int:quote_id>/expire', methods=['POST'])
@require_auth
def expire_quote(quote_id, principal):
    return _transition(quote_id, principal, QuoteStatus.EXPIRED)


@quotes_bp.route('/<int:quote_id>/convert-to-invoice', methods=['POST'])
@require_auth
def convert_to_invoice(quote_id, principal):
    """Create an unpaid invoice from an accepted quote."""
    invoice = convert_quote_to_invoice(
        quote_id,
        get_session(),
        principal,
        due_days=current_app.config.get('INVOICE_DUE_DAYS', 30),
        allow_duplicates=current_app.config.get('ALLOW_DUPLICATE_QUOTE_CONVERSION', True),
    )
    return ok(invoice.to_dict(), 201)


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
@require_auth
def download_pdf(quote_id, principal):
    pdf_buffer = quote_service.generate_quote_pdf(quote_id, get_session(), principal, business_info())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"quote_{quote_id:05d}.pdf"
    )
