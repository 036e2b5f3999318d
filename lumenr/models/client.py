"""Client model."""
from sqlalchemy import Column, String, Text, Numeric, Boolean, DateTime
from sqlalchemy.sql import func
from lumenr.database import Base
from lumenr.models.types import BigIntId


class Client(Base):
    """Client (customer) that quotes and invoices are addressed to."""

    __tablename__ = 'clients'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    company = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(120), nullable=True)
    province = Column(String(120), nullable=True)
    country = Column(String(120), nullable=True)
    tax_rate = Column(Numeric(5, 2), nullable=True)
    auto_calculate_tax = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'company': self.company,
            'address': self.address,
            'city': self.city,
            'province': self.province,
            'country': self.country,
            'taxRate': str(self.tax_rate) if self.tax_rate is not None else None,
            'autoCalculateTax': bool(self.auto_calculate_tax),
        }
