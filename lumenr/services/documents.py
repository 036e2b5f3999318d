"""Payload helpers shared by the quote and invoice services."""
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from lumenr.exceptions import ValidationError, NotFoundError
from lumenr.models import Client
from lumenr.services.line_items import parse_line_items
from lumenr.services.tax_service import resolve_client_tax_rate
from lumenr.utils.number_format import parse_percentage

logger = logging.getLogger(__name__)

OWNER_FIELDS = ('userId', 'user_id')
COMPUTED_FIELDS = ('subtotal', 'tax', 'total')


def reject_owner_fields(payload: Dict[str, Any]) -> None:
    if any(field in payload for field in OWNER_FIELDS):
        raise ValidationError('User ID cannot be provided in request body')


def parse_id(value, field: str) -> int:
    if value is None or value == '' or isinstance(value, bool):
        raise ValidationError(f'{field} is required')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')


def get_owned_client(session: Session, client_id: int, principal) -> Client:
    client = session.query(Client).filter(
        Client.id == client_id,
        Client.user_id == principal.user_id
    ).first()
    if not client:
        raise NotFoundError('Client not found')
    return client


def resolve_tax_rate(payload: Dict[str, Any], client: Client, document=None):
    """
    Pick the tax percentage for a (re)priced quote or invoice.

    An explicit ``taxRate`` wins; a null ``taxRate`` re-resolves from the
    client. Otherwise the document's stored rate is kept, and new documents
    use the client.
    """
    if 'taxRate' in payload:
        rate = parse_percentage(payload['taxRate'])
        return rate if rate is not None else resolve_client_tax_rate(client)
    if document is not None and document.tax_rate is not None:
        return document.tax_rate
    return resolve_client_tax_rate(client)


def parse_items(payload: Dict[str, Any]):
    raw = payload.get('items')
    if raw is None:
        raise ValidationError('Items are required')
    return parse_line_items(raw)


def warn_on_computed_fields(payload: Dict[str, Any], principal) -> None:
    submitted = [field for field in COMPUTED_FIELDS if field in payload]
    if submitted:
        logger.debug(
            f"[DOCUMENTS] user={principal.user_id} ignoring client-submitted {', '.join(submitted)}"
        )
