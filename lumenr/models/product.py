"""Product catalog model."""
from sqlalchemy import Column, String, Text, Boolean, Numeric, Integer, DateTime
from sqlalchemy.sql import func
from lumenr.database import Base
from lumenr.models.types import BigIntId


class Product(Base):
    """Product catalog entry."""

    __tablename__ = 'products'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(120), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    stock_quantity = Column(Integer, nullable=True, default=0)
    track_inventory = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', active={self.active})>"

    @property
    def unit_price(self):
        """Catalog price under the name line items use."""
        return self.price

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': str(self.price),
            'category': self.category,
            'active': bool(self.active),
        }
