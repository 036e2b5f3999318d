"""Quote service: pricing-backed CRUD and lifecycle transitions."""
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lumenr.blueprints.metrics import quote_transitions_total
from lumenr.exceptions import (
    LumenrError, NotFoundError,
    IllegalStateTransitionError, PersistenceError
)
from lumenr.models import Client, Quote, QuoteStatus, Invoice
from lumenr.services.catalog_service import CatalogService
from lumenr.services.documents import (
    reject_owner_fields, parse_id, get_owned_client, resolve_tax_rate,
    parse_items, warn_on_computed_fields
)
from lumenr.services.pdf_service import render_quote_pdf

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _get_owned_quote(session: Session, quote_id: int, principal, for_update: bool = False) -> Quote:
    query = session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.user_id == principal.user_id
    )
    if for_update:
        query = query.with_for_update()
    quote = query.first()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote


def _record_transition(quote: Quote, previous: QuoteStatus, principal) -> None:
    quote_transitions_total.labels(from_status=previous.value, to_status=quote.status).inc()
    logger.info(
        f"[QUOTES] user={principal.user_id} quote={quote.id} {previous.value} -> {quote.status}"
    )


def list_quotes(session: Session, principal, status: Optional[str] = None,
                search: Optional[str] = None, limit: int = MAX_PAGE_SIZE,
                offset: int = 0) -> List[Quote]:
    """
    List the principal's quotes, newest first.

    ``search`` matches client name, company or email (case-insensitive).
    ``limit`` is capped at 100.
    """
    query = session.query(Quote).filter(Quote.user_id == principal.user_id)

    if status:
        query = query.filter(Quote.status == QuoteStatus.parse(status).value)

    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.join(Client, Quote.client_id == Client.id).filter(
            or_(
                Client.name.ilike(term),
                Client.company.ilike(term),
                Client.email.ilike(term),
            )
        )

    limit = max(1, min(limit or MAX_PAGE_SIZE, MAX_PAGE_SIZE))
    offset = max(0, offset or 0)

    return (
        query.order_by(Quote.created_at.desc(), Quote.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def get_quote(quote_id: int, session: Session, principal) -> Quote:
    return _get_owned_quote(session, quote_id, principal)


def create_quote(payload: Dict[str, Any], session: Session, principal) -> Quote:
    """
    Create a quote for one of the principal's clients.

    The quote starts in draft with totals computed from ``items``. A
    ``status`` of ``sent`` is applied through the state machine right after
    creation; any other non-draft status is rejected.

    Raises:
        ValidationError: malformed payload.
        NotFoundError: client or catalog entry not owned by the principal.
        IllegalStateTransitionError: requested initial status not reachable.
    """
    try:
        reject_owner_fields(payload)
        client_id = parse_id(payload.get('clientId'), 'Client ID')
        items = parse_items(payload)
        requested_status = payload.get('status')
        if requested_status is not None:
            requested_status = QuoteStatus.parse(requested_status)
        warn_on_computed_fields(payload, principal)

        client = get_owned_client(session, client_id, principal)
        CatalogService(session, principal).validate_references(items)

        now = datetime.now(timezone.utc)
        quote = Quote(
            user_id=principal.user_id,
            client_id=client.id,
            status=QuoteStatus.DRAFT.value,
            notes=payload.get('notes') or None,
            pdf_url=payload.get('pdfUrl') or None,
            created_at=now,
            updated_at=now,
        )
        quote.client = client
        quote.apply_pricing(items, resolve_tax_rate(payload, client))
        session.add(quote)
        session.flush()

        previous = None
        if requested_status is not None and requested_status is not QuoteStatus.DRAFT:
            previous = quote.transition_to(requested_status)

        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTES] user={principal.user_id} create failed")
        raise PersistenceError() from e

    logger.info(f"[QUOTES] user={principal.user_id} created quote={quote.id} total={quote.total}")
    if previous is not None:
        _record_transition(quote, previous, principal)
    return quote


def update_quote(quote_id: int, payload: Dict[str, Any], session: Session, principal) -> Quote:
    """
    Edit a draft or sent quote and recompute its totals.

    Editable fields: ``clientId``, ``items``, ``notes``, ``taxRate``.
    ``pdfUrl`` may be set in any status. A ``status`` different from the
    current one goes through the state machine after the edits are applied,
    so ``{"items": [...], "status": "sent"}`` sends the edited quote.
    """
    try:
        reject_owner_fields(payload)
        quote = _get_owned_quote(session, quote_id, principal, for_update=True)
        warn_on_computed_fields(payload, principal)

        edits = [field for field in ('clientId', 'items', 'notes', 'taxRate') if field in payload]
        if edits:
            if not quote.is_editable:
                raise IllegalStateTransitionError(
                    f'Quote is {quote.status} and can no longer be edited',
                    current_status=quote.status,
                )

            client = quote.client
            client_changed = False
            if 'clientId' in payload:
                client = get_owned_client(session, parse_id(payload['clientId'], 'Client ID'), principal)
                client_changed = client.id != quote.client_id
                quote.client = client

            items = quote.items
            if 'items' in payload:
                items = parse_items(payload)
                CatalogService(session, principal).validate_references(items, existing_items=quote.items)

            if 'notes' in payload:
                quote.notes = payload['notes'] or None

            tax_rate = resolve_tax_rate(payload, client, None if client_changed else quote)
            quote.apply_pricing(items, tax_rate)

        if 'pdfUrl' in payload:
            quote.pdf_url = payload['pdfUrl'] or None

        previous = None
        if payload.get('status') is not None:
            target = QuoteStatus.parse(payload['status'])
            if target is not quote.status_enum:
                previous = quote.transition_to(target)

        quote.updated_at = datetime.now(timezone.utc)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTES] user={principal.user_id} update of quote={quote_id} failed")
        raise PersistenceError() from e

    if previous is not None:
        _record_transition(quote, previous, principal)
    return quote


def transition_quote(quote_id: int, target, session: Session, principal) -> Quote:
    """
    Apply one lifecycle transition (send, accept, reject, expire).

    Raises:
        NotFoundError: quote missing or foreign.
        IllegalStateTransitionError: transition not allowed; status unchanged.
    """
    try:
        quote = _get_owned_quote(session, quote_id, principal, for_update=True)
        previous = quote.transition_to(target)
        quote.updated_at = datetime.now(timezone.utc)
        session.commit()
    except IllegalStateTransitionError as e:
        session.rollback()
        logger.info(
            f"[QUOTES] user={principal.user_id} quote={quote_id} rejected transition: {e.message}"
        )
        raise
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTES] user={principal.user_id} transition of quote={quote_id} failed")
        raise PersistenceError() from e

    _record_transition(quote, previous, principal)
    return quote


def delete_quote(quote_id: int, session: Session, principal) -> Dict[str, Any]:
    """
    Delete a quote in any status.

    Invoices converted from it survive with ``quote_id`` cleared. Returns
    the deleted quote's data.
    """
    try:
        quote = _get_owned_quote(session, quote_id, principal, for_update=True)
        data = quote.to_dict()

        # Cleared explicitly; SQLite does not enforce ON DELETE SET NULL by default
        session.query(Invoice).filter(Invoice.quote_id == quote.id).update(
            {Invoice.quote_id: None}, synchronize_session=False
        )
        session.delete(quote)
        session.commit()
    except LumenrError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[QUOTES] user={principal.user_id} delete of quote={quote_id} failed")
        raise PersistenceError() from e

    logger.info(f"[QUOTES] user={principal.user_id} deleted quote={quote_id}")
    return data


def expire_stale_quotes(session: Session, cutoff: datetime) -> List[int]:
    """
    Expire every draft or sent quote created before ``cutoff``.

    Runs as a scheduled job across all accounts. Returns the expired ids.
    """
    try:
        quotes = session.query(Quote).filter(
            Quote.status.in_([QuoteStatus.DRAFT.value, QuoteStatus.SENT.value]),
            Quote.created_at < cutoff
        ).with_for_update().all()

        expired = []
        for quote in quotes:
            previous = quote.transition_to(QuoteStatus.EXPIRED)
            quote_transitions_total.labels(
                from_status=previous.value, to_status=QuoteStatus.EXPIRED.value
            ).inc()
            expired.append(quote.id)

        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("[QUOTES] expiring stale quotes failed")
        raise PersistenceError() from e

    if expired:
        logger.info(f"[QUOTES] expired {len(expired)} quotes created before {cutoff.isoformat()}")
    return expired


def generate_quote_pdf(quote_id: int, session: Session, principal, business_info: dict) -> BytesIO:
    quote = _get_owned_quote(session, quote_id, principal)
    return render_quote_pdf(quote, business_info)
