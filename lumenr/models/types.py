"""Custom column types."""
from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from lumenr.exceptions import ValidationError
from lumenr.services.line_items import LineItem, parse_line_items


class LineItemsType(TypeDecorator):
    """
    JSON array of line items, validated in both directions.

    Python side is a list of LineItem value objects; the column stores
    their dict form (JSONB on PostgreSQL, JSON elsewhere).
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return []
        out = []
        for item in value:
            if not isinstance(item, LineItem):
                raise TypeError(f'Expected LineItem, got {type(item).__name__}')
            out.append(item.to_dict())
        return out

    def process_result_value(self, value, dialect):
        if value is None:
            return []
        try:
            return parse_line_items(value)
        except ValidationError as e:
            raise ValueError(f'Stored line items are invalid: {e.message}') from e


# BIGINT ids on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer(), 'sqlite')
