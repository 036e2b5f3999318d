"""
Integration tests for the Flask CLI commands.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from lumenr.models import Quote
from lumenr.services.line_items import LineItem


def _quote(session, client_id, status, age_days):
    quote = Quote(
        user_id='user-alice',
        client_id=client_id,
        status=status,
        created_at=datetime.now(timezone.utc) - timedelta(days=age_days),
    )
    quote.apply_pricing([LineItem(id='a', quantity=1, unit_price=Decimal('10.00'))], Decimal('0'))
    session.add(quote)
    session.commit()
    return quote.id


class TestExpireQuotesCommand:
    """flask expire-quotes"""

    @pytest.fixture
    def quotes(self, session, ontario_client):
        return {
            'old_draft': _quote(session, ontario_client.id, 'draft', 45),
            'old_sent': _quote(session, ontario_client.id, 'sent', 31),
            'old_accepted': _quote(session, ontario_client.id, 'accepted', 60),
            'recent_sent': _quote(session, ontario_client.id, 'sent', 2),
        }

    def _statuses(self, session, quotes):
        session.expire_all()
        return {name: session.get(Quote, quote_id).status for name, quote_id in quotes.items()}

    def test_expires_stale_open_quotes(self, app, session, quotes):
        result = app.test_cli_runner().invoke(args=['expire-quotes', '--days', '30'])

        assert result.exit_code == 0, result.output
        assert 'Expired 2 quote(s)' in result.output
        assert self._statuses(session, quotes) == {
            'old_draft': 'expired',
            'old_sent': 'expired',
            'old_accepted': 'accepted',
            'recent_sent': 'sent',
        }

    def test_defaults_to_configured_validity(self, app, session, quotes):
        result = app.test_cli_runner().invoke(args=['expire-quotes'])

        assert result.exit_code == 0, result.output
        assert self._statuses(session, quotes)['old_sent'] == 'expired'

    def test_rejects_negative_days(self, app):
        result = app.test_cli_runner().invoke(args=['expire-quotes', '--days', '-1'])
        assert result.exit_code != 0


class TestInitDbCommand:
    """flask init-db"""

    def test_init_db_is_idempotent(self, app):
        result = app.test_cli_runner().invoke(args=['init-db'])
        assert result.exit_code == 0
        assert 'Database tables created' in result.output
