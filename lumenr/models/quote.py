"""Quote model and its lifecycle."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lumenr.database import Base
from lumenr.exceptions import IllegalStateTransitionError, ValidationError
from lumenr.models.types import BigIntId, LineItemsType
from lumenr.utils.formatters import money_str, iso_or_none
from lumenr.services.line_items import compute_aggregates


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ', '.join(s.value for s in cls)
            raise ValidationError(f'Invalid status. Must be one of: {valid}')


# Legal transitions; every status missing as a key is terminal
QUOTE_TRANSITIONS = {
    QuoteStatus.DRAFT: (QuoteStatus.SENT, QuoteStatus.EXPIRED),
    QuoteStatus.SENT: (QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED),
}

EDITABLE_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.SENT)


class Quote(Base):
    """
    Quote (priced proposal sent to a client).

    ``subtotal``, ``tax`` and ``total`` are always derived from ``items``
    through ``apply_pricing``; they are never taken from request input.
    An accepted quote can be converted to one or more invoices.
    """

    __tablename__ = 'quotes'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    client_id = Column(BigIntId, ForeignKey('clients.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    items = Column(LineItemsType, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 3), nullable=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    pdf_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship('Client')

    def __repr__(self):
        return f"<Quote(id={self.id}, status='{self.status}', total={self.total})>"

    @property
    def status_enum(self):
        return QuoteStatus(self.status)

    @property
    def is_editable(self):
        """Only draft and sent quotes accept edits to items, client or notes."""
        return self.status_enum in EDITABLE_STATUSES

    @property
    def is_convertible(self):
        return self.status_enum is QuoteStatus.ACCEPTED

    def can_transition_to(self, target):
        return QuoteStatus.parse(target) in QUOTE_TRANSITIONS.get(self.status_enum, ())

    def transition_to(self, target):
        """
        Move the quote to ``target`` or raise without touching the status.

        Returns the previous status.
        """
        target = QuoteStatus.parse(target)
        current = self.status_enum

        if target not in QUOTE_TRANSITIONS.get(current, ()):
            raise IllegalStateTransitionError(
                f'Invalid status transition from {current.value} to {target.value}',
                current_status=current.value,
                requested_status=target.value,
            )
        if target is QuoteStatus.SENT and not self.items:
            raise IllegalStateTransitionError(
                'Cannot send a quote without line items',
                current_status=current.value,
                requested_status=target.value,
            )

        self.status = target.value
        return current

    def apply_pricing(self, items, tax_rate):
        """Replace the items and recompute the stored aggregates in one step."""
        aggregates = compute_aggregates(items, tax_rate)
        self.items = list(items)
        self.tax_rate = tax_rate
        self.subtotal = aggregates.subtotal
        self.tax = aggregates.tax
        self.total = aggregates.total
        return aggregates

    def to_dict(self, include_client=False):
        data = {
            'id': self.id,
            'clientId': self.client_id,
            'userId': self.user_id,
            'items': [item.to_dict() for item in self.items],
            'subtotal': money_str(self.subtotal),
            'tax': money_str(self.tax),
            'total': money_str(self.total),
            'taxRate': str(self.tax_rate) if self.tax_rate is not None else None,
            'status': self.status,
            'pdfUrl': self.pdf_url,
            'notes': self.notes,
            'convertedAt': iso_or_none(self.converted_at),
            'createdAt': iso_or_none(self.created_at),
            'updatedAt': iso_or_none(self.updated_at),
        }
        if include_client and self.client is not None:
            data['clientName'] = self.client.name
            data['clientEmail'] = self.client.email
            data['clientCompany'] = self.client.company
        return data
