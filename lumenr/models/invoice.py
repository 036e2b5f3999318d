"""Invoice model."""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Numeric, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lumenr.database import Base
from lumenr.exceptions import IllegalStateTransitionError, ValidationError
from lumenr.models.types import BigIntId, LineItemsType
from lumenr.utils.formatters import money_str, iso_or_none
from lumenr.services.line_items import compute_aggregates


class InvoiceStatus(enum.Enum):
    """Invoice status enum."""
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value):
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ', '.join(s.value for s in cls)
            raise ValidationError(f'Invalid status. Must be one of: {valid}')


OPEN_STATUSES = (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE)


class Invoice(Base):
    """
    Invoice (billable document).

    Items and totals are a snapshot taken when the invoice is created; an
    invoice converted from a quote keeps a weak ``quote_id`` back-reference
    that is nulled if the quote is deleted. Standalone invoices are priced
    through ``apply_pricing`` and their totals freeze once paid.
    """

    __tablename__ = 'invoices'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    quote_id = Column(BigIntId, ForeignKey('quotes.id', ondelete='SET NULL'), nullable=True)
    client_id = Column(BigIntId, ForeignKey('clients.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    items = Column(LineItemsType, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(6, 3), nullable=True)
    deposit_required = Column(Boolean, nullable=False, default=False)
    deposit_amount = Column(Numeric(12, 2), nullable=True)
    status = Column(String(20), nullable=False, default=InvoiceStatus.UNPAID.value)
    due_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    pdf_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship('Client')
    quote = relationship('Quote', foreign_keys=[quote_id])

    def __repr__(self):
        return f"<Invoice(id={self.id}, status='{self.status}', total={self.total})>"

    @property
    def status_enum(self):
        return InvoiceStatus(self.status)

    def is_overdue(self, now=None):
        """Open invoice whose due date has passed (calculated, not stored)."""
        if self.status_enum not in OPEN_STATUSES or self.due_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        due = self.due_date
        # SQLite hands back naive datetimes
        if due.tzinfo is None and now.tzinfo is not None:
            now = now.replace(tzinfo=None)
        return now > due

    def mark_paid(self, paid_at):
        """Enter ``paid``; ``paid_at`` is set exactly once."""
        current = self.status_enum
        if current is InvoiceStatus.PAID:
            raise IllegalStateTransitionError(
                'Invoice is already paid', current.value, InvoiceStatus.PAID.value
            )
        if current is InvoiceStatus.CANCELLED:
            raise IllegalStateTransitionError(
                'Cancelled invoices cannot be paid', current.value, InvoiceStatus.PAID.value
            )
        self.status = InvoiceStatus.PAID.value
        self.paid_at = paid_at

    def change_status(self, target, paid_at=None):
        """
        Set a new status. ``paid`` goes through ``mark_paid``; a paid
        invoice cannot be moved back to another status.
        """
        target = InvoiceStatus.parse(target)
        current = self.status_enum
        if target is current:
            return
        if target is InvoiceStatus.PAID:
            self.mark_paid(paid_at or datetime.now(timezone.utc))
            return
        if current is InvoiceStatus.PAID:
            raise IllegalStateTransitionError(
                'Paid invoices cannot change status', current.value, target.value
            )
        self.status = target.value

    def apply_pricing(self, items, tax_rate):
        """Replace the items and recompute the stored aggregates; frozen once paid."""
        if self.paid_at is not None:
            raise IllegalStateTransitionError(
                'Paid invoices cannot change items or totals', self.status
            )
        aggregates = compute_aggregates(items, tax_rate)
        self.items = list(items)
        self.tax_rate = tax_rate
        self.subtotal = aggregates.subtotal
        self.tax = aggregates.tax
        self.total = aggregates.total
        return aggregates

    def to_dict(self):
        return {
            'id': self.id,
            'quoteId': self.quote_id,
            'clientId': self.client_id,
            'userId': self.user_id,
            'items': [item.to_dict() for item in self.items],
            'subtotal': money_str(self.subtotal),
            'tax': money_str(self.tax),
            'total': money_str(self.total),
            'taxRate': str(self.tax_rate) if self.tax_rate is not None else None,
            'depositRequired': bool(self.deposit_required),
            'depositAmount': money_str(self.deposit_amount),
            'status': self.status,
            'isOverdue': self.is_overdue(),
            'dueDate': iso_or_none(self.due_date),
            'paidAt': iso_or_none(self.paid_at),
            'pdfUrl': self.pdf_url,
            'notes': self.notes,
            'createdAt': iso_or_none(self.created_at),
            'updatedAt': iso_or_none(self.updated_at),
        }
