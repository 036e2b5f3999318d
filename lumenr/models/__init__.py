"""Models package - exports all SQLAlchemy models."""
from lumenr.models.client import Client
from lumenr.models.product import Product
from lumenr.models.service import Service
from lumenr.models.quote import Quote, QuoteStatus, QUOTE_TRANSITIONS
from lumenr.models.invoice import Invoice, InvoiceStatus

__all__ = [
    'Client', 'Product', 'Service',
    'Quote', 'QuoteStatus', 'QUOTE_TRANSITIONS',
    'Invoice', 'InvoiceStatus',
]
