"""Invoice service: CRUD, quote conversion and payment."""
import logging
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lumenr.blueprints.metrics import quote_conversions_total
from lumenr.exceptions import (
    LumenrError, ValidationError, NotFoundError,
    IllegalStateTransitionError, PersistenceError
)
from lumenr.models import Invoice, InvoiceStatus, Quote
from lumenr.services.catalog_service import CatalogService
from lumenr.services.documents import (
    reject_owner_fields, parse_id, get_owned_client, resolve_tax_rate,
    parse_items, warn_on_computed_fields
)
from lumenr.services.pdf_service import render_invoice_pdf
from lumenr.utils.number_format import parse_money

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 30
MAX_PAGE_SIZE = 100


def parse_timestamp(value, field: str = 'paidAt') -> Optional[datetime]:
    """Parse an optional ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be an ISO-8601 timestamp')
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f'{field} must be an ISO-8601 timestamp')
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _get_owned_invoice(session: Session, invoice_id: int, principal, for_update: bool = False) -> Invoice:
    query = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.user_id == principal.user_id
    )
    if for_update:
        query = query.with_for_update()
    invoice = query.first()
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice


def convert_quote_to_invoice(quote_id: int, session: Session, principal,
                             now: Optional[datetime] = None,
                             due_days: int = INVOICE_DUE_DAYS,
                             allow_duplicates: bool = True) -> Invoice:
    """
    Create an unpaid invoice from an accepted quote.

    Items and totals are copied by value, so later edits to the quote never
    reach the invoice. The quote itself keeps its status; ``converted_at``
    records the first conversion. With ``allow_duplicates`` off, a quote
    that was already converted is rejected.

    Raises:
        NotFoundError: quote missing or foreign.
        IllegalStateTransitionError: quote not accepted, or already converted.
        PersistenceError: the invoice could not be stored (nothing written).
    """
    now = now or datetime.now(timezone.utc)
    try:
        quote = session.query(Quote).filter(
            Quote.id == quote_id,
            Quote.user_id == principal.user_id
        ).with_for_update().first()

        if not quote:
            raise NotFoundError('Quote not found')

        if not quote.is_convertible:
            raise IllegalStateTransitionError(
                'Only accepted quotes can be converted to invoices',
                current_status=quote.status,
            )

        if not allow_duplicates and quote.converted_at is not None:
            raise IllegalStateTransitionError(
                'Quote has already been converted to an invoice',
                current_status=quote.status,
            )

        invoice = Invoice(
            quote_id=quote.id,
            client_id=quote.client_id,
            user_id=quote.user_id,
            items=list(quote.items),
            subtotal=quote.subtotal,
            tax=quote.tax,
            total=quote.total,
            tax_rate=quote.tax_rate,
            deposit_required=False,
            deposit_amount=None,
            status=InvoiceStatus.UNPAID.value,
            due_date=now + timedelta(days=due_days),
            paid_at=None,
            pdf_url=None,
            notes=quote.notes,
            created_at=now,
            updated_at=now,
        )
        session.add(invoice)

        if quote.converted_at is None:
            quote.converted_at = now

        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICES] user={principal.user_id} conversion of quote={quote_id} failed")
        raise PersistenceError('Failed to create invoice') from e

    quote_conversions_total.inc()
    logger.info(
        f"[INVOICES] user={principal.user_id} quote={quote_id} converted to invoice={invoice.id} "
        f"total={invoice.total}"
    )
    return invoice


def list_invoices(session: Session, principal, status: Optional[str] = None,
                  limit: int = MAX_PAGE_SIZE, offset: int = 0) -> List[Invoice]:
    query = session.query(Invoice).filter(Invoice.user_id == principal.user_id)
    if status:
        query = query.filter(Invoice.status == InvoiceStatus.parse(status).value)

    limit = max(1, min(limit or MAX_PAGE_SIZE, MAX_PAGE_SIZE))
    offset = max(0, offset or 0)

    return (
        query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def get_invoice(invoice_id: int, session: Session, principal) -> Invoice:
    return _get_owned_invoice(session, invoice_id, principal)


def _apply_deposit(invoice: Invoice, payload: Dict[str, Any]) -> None:
    if 'depositAmount' in payload:
        amount = payload['depositAmount']
        if amount is None or amount == '':
            invoice.deposit_amount = None
        else:
            invoice.deposit_amount = parse_money(amount, 'depositAmount')
    if 'depositRequired' in payload:
        invoice.deposit_required = bool(payload['depositRequired'])
    if invoice.deposit_required and invoice.deposit_amount is None:
        raise ValidationError('depositAmount is required when depositRequired is true')


def _get_owned_quote_id(session: Session, value, principal) -> Optional[int]:
    if value is None or value == '':
        return None
    quote = session.query(Quote.id).filter(
        Quote.id == parse_id(value, 'Quote ID'),
        Quote.user_id == principal.user_id
    ).first()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote.id


def create_invoice(payload: Dict[str, Any], session: Session, principal,
                   now: Optional[datetime] = None,
                   due_days: int = INVOICE_DUE_DAYS) -> Invoice:
    """
    Create a standalone invoice for one of the principal's clients.

    Totals are computed from ``items``; submitted ``subtotal``, ``tax`` and
    ``total`` are ignored. ``dueDate`` defaults to ``due_days`` from now.
    A ``status`` of ``paid`` records ``paidAt`` (default now).

    Raises:
        ValidationError: malformed payload.
        NotFoundError: client, quote or catalog entry not owned by the principal.
    """
    now = now or datetime.now(timezone.utc)
    try:
        reject_owner_fields(payload)
        client_id = parse_id(payload.get('clientId'), 'Client ID')
        items = parse_items(payload)
        requested_status = payload.get('status')
        if requested_status is not None:
            requested_status = InvoiceStatus.parse(requested_status)
        due_date = parse_timestamp(payload.get('dueDate'), 'dueDate') or now + timedelta(days=due_days)
        paid_at = parse_timestamp(payload.get('paidAt'))
        warn_on_computed_fields(payload, principal)

        client = get_owned_client(session, client_id, principal)
        CatalogService(session, principal).validate_references(items)

        invoice = Invoice(
            quote_id=_get_owned_quote_id(session, payload.get('quoteId'), principal),
            client_id=client.id,
            user_id=principal.user_id,
            deposit_required=False,
            status=InvoiceStatus.UNPAID.value,
            due_date=due_date,
            pdf_url=payload.get('pdfUrl') or None,
            notes=payload.get('notes') or None,
            created_at=now,
            updated_at=now,
        )
        invoice.client = client
        invoice.apply_pricing(items, resolve_tax_rate(payload, client))
        _apply_deposit(invoice, payload)
        if requested_status is not None:
            invoice.change_status(requested_status, paid_at=paid_at)

        session.add(invoice)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICES] user={principal.user_id} create failed")
        raise PersistenceError('Failed to create invoice') from e

    logger.info(f"[INVOICES] user={principal.user_id} created invoice={invoice.id} total={invoice.total}")
    return invoice


def update_invoice(invoice_id: int, payload: Dict[str, Any], session: Session, principal) -> Invoice:
    """
    Edit an invoice and recompute its totals when pricing inputs change.

    ``clientId``, ``items`` and ``taxRate`` re-price the invoice and are
    rejected once it has been paid. Deposit, due date, notes and pdfUrl
    can be edited in any status; ``status`` goes through ``change_status``.

    Raises:
        NotFoundError: invoice, client or catalog entry missing or foreign.
        IllegalStateTransitionError: totals change on a paid invoice, or an
            illegal status change.
    """
    try:
        reject_owner_fields(payload)
        invoice = _get_owned_invoice(session, invoice_id, principal, for_update=True)
        warn_on_computed_fields(payload, principal)

        if any(field in payload for field in ('clientId', 'items', 'taxRate')):
            client = invoice.client
            client_changed = False
            if 'clientId' in payload:
                client = get_owned_client(session, parse_id(payload['clientId'], 'Client ID'), principal)
                client_changed = client.id != invoice.client_id
                invoice.client = client

            items = invoice.items
            if 'items' in payload:
                items = parse_items(payload)
                CatalogService(session, principal).validate_references(items, existing_items=invoice.items)

            invoice.apply_pricing(items, resolve_tax_rate(payload, client, None if client_changed else invoice))

        _apply_deposit(invoice, payload)

        if 'dueDate' in payload:
            invoice.due_date = parse_timestamp(payload['dueDate'], 'dueDate')
        if 'notes' in payload:
            invoice.notes = payload['notes'] or None
        if 'pdfUrl' in payload:
            invoice.pdf_url = payload['pdfUrl'] or None

        if payload.get('status') is not None:
            invoice.change_status(payload['status'], paid_at=parse_timestamp(payload.get('paidAt')))

        invoice.updated_at = datetime.now(timezone.utc)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICES] user={principal.user_id} update of invoice={invoice_id} failed")
        raise PersistenceError() from e

    return invoice


def delete_invoice(invoice_id: int, session: Session, principal) -> Dict[str, Any]:
    """Delete an invoice in any status; returns the deleted invoice's data."""
    try:
        invoice = _get_owned_invoice(session, invoice_id, principal, for_update=True)
        data = invoice.to_dict()
        session.delete(invoice)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICES] user={principal.user_id} delete of invoice={invoice_id} failed")
        raise PersistenceError() from e

    logger.info(f"[INVOICES] user={principal.user_id} deleted invoice={invoice_id}")
    return data


def mark_invoice_paid(invoice_id: int, session: Session, principal,
                      paid_at: Optional[datetime] = None) -> Invoice:
    """
    Record full payment of an invoice.

    Raises:
        NotFoundError: invoice missing or foreign.
        IllegalStateTransitionError: invoice already paid or cancelled.
    """
    paid_at = paid_at or datetime.now(timezone.utc)
    try:
        invoice = _get_owned_invoice(session, invoice_id, principal, for_update=True)
        invoice.mark_paid(paid_at)
        invoice.updated_at = datetime.now(timezone.utc)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[INVOICES] user={principal.user_id} payment of invoice={invoice_id} failed")
        raise PersistenceError() from e

    logger.info(f"[INVOICES] user={principal.user_id} invoice={invoice_id} marked paid")
    return invoice


def generate_invoice_pdf(invoice_id: int, session: Session, principal, business_info: dict) -> BytesIO:
    invoice = _get_owned_invoice(session, invoice_id, principal)
    return render_invoice_pdf(invoice, business_info)
