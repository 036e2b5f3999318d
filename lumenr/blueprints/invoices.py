"""Invoices blueprint: CRUD, payment and PDF."""
from flask import Blueprint, current_app, request, send_file

from lumenr.blueprints.common import ok, json_body, page_args, business_info
from lumenr.database import get_session
from lumenr.middleware import require_auth
from lumenr.services import invoice_service

invoices_bp = Blueprint('invoices', __name__, url_prefix='/api/invoices')


@invoices_bp.route('', methods=['GET'])
@require_auth
def list_invoices(principal):
    limit, offset = page_args()
    invoices = invoice_service.list_invoices(
        get_session(),
        principal,
        status=request.args.get('status'),
        limit=limit,
        offset=offset,
    )
    return ok([invoice.to_dict() for invoice in invoices])


@invoices_bp.route('', methods=['POST'])
@require_auth
def create_invoice(principal):
    """Create a standalone invoice; totals are computed from the items."""
    invoice = invoice_service.create_invoice(
        json_body(),
        get_session(),
        principal,
        due_days=current_app.config.get('INVOICE_DUE_DAYS', invoice_service.INVOICE_DUE_DAYS),
    )
    return ok(invoice.to_dict(), 201)


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@require_auth
def get_invoice(invoice_id, principal):
    invoice = invoice_service.get_invoice(invoice_id, get_session(), principal)
    return ok(invoice.to_dict())


@invoices_bp.route('/<int:invoice_id>', methods=['PUT'])
@require_auth
def update_invoice(invoice_id, principal):
    invoice = invoice_service.update_invoice(invoice_id, json_body(), get_session(), principal)
    return ok(invoice.to_dict())


@invoices_bp.route('/<int:invoice_id>', methods=['DELETE'])
@require_auth
def delete_invoice(invoice_id, principal):
    data = invoice_service.delete_invoice(invoice_id, get_session(), principal)
    return ok(data)


@invoices_bp.route('/<int:invoice_id>/mark-paid', methods=['POST'])
@require_auth
def mark_paid(invoice_id, principal):
    """Mark an invoice paid; ``paidAt`` (ISO-8601) defaults to now."""
    paid_at = invoice_service.parse_timestamp(json_body().get('paidAt'))
    invoice = invoice_service.mark_invoice_paid(invoice_id, get_session(), principal, paid_at=paid_at)
    return ok(invoice.to_dict())


@invoices_bp.route('/<int:invoice_id>/pdf', methods=['GET'])
@require_auth
def download_pdf(invoice_id, principal):
    pdf_buffer = invoice_service.generate_invoice_pdf(invoice_id, get_session(), principal, business_info())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"invoice_{invoice_id:05d}.pdf"
    )
