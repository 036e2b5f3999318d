"""Service catalog model."""
from sqlalchemy import Column, String, Text, Boolean, Numeric, Integer, DateTime
from sqlalchemy.sql import func
from lumenr.database import Base
from lumenr.models.types import BigIntId


class Service(Base):
    """Service catalog entry (billable work, priced per unit)."""

    __tablename__ = 'services'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    category = Column(String(120), nullable=True)
    duration = Column(Integer, nullable=True)  # minutes
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}', active={self.active})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'unitPrice': str(self.unit_price),
            'currency': self.currency,
            'category': self.category,
            'duration': self.duration,
            'active': bool(self.active),
        }
