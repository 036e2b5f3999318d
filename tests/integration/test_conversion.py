"""
Integration tests for quote-to-invoice conversion, invoice CRUD and payment.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from lumenr.exceptions import IllegalStateTransitionError, NotFoundError, PersistenceError
from lumenr.models import Invoice, Quote
from lumenr.services.invoice_service import convert_quote_to_invoice
from lumenr.services.line_items import LineItem

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _naive(value):
    return value.replace(tzinfo=None)


@pytest.fixture
def accepted_quote(session, ontario_client, alice):
    """Accepted quote: 1 x 1800.00 at 13% -> 1800.00 / 234.00 / 2034.00."""
    quote = Quote(
        user_id=alice.user_id,
        client_id=ontario_client.id,
        status='accepted',
        notes='Full rewiring',
        created_at=NOW - timedelta(days=3),
    )
    quote.apply_pricing([
        LineItem(id='item-1', name='Rewiring', quantity=1, unit_price=Decimal('1800.00')),
    ], Decimal('13'))
    session.add(quote)
    session.commit()
    session.refresh(quote)
    session.expunge(quote)
    return quote


class TestConvertQuoteToInvoice:
    """Service-level conversion."""

    def test_invoice_copies_totals(self, session, alice, accepted_quote):
        invoice = convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)

        assert invoice.subtotal == Decimal('1800.00')
        assert invoice.tax == Decimal('234.00')
        assert invoice.total == Decimal('2034.00')
        assert invoice.status == 'unpaid'
        assert invoice.paid_at is None
        assert invoice.pdf_url is None
        assert invoice.deposit_required is False
        assert invoice.quote_id == accepted_quote.id
        assert invoice.client_id == accepted_quote.client_id
        assert invoice.user_id == 'user-alice'
        assert invoice.notes == 'Full rewiring'
        assert _naive(invoice.due_date) == _naive(NOW + timedelta(days=30))

    def test_items_are_copied_by_value(self, session, alice, accepted_quote):
        invoice = convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)
        invoice_id = invoice.id

        quote = session.get(Quote, accepted_quote.id)
        quote.apply_pricing([LineItem(id='other', quantity=9, unit_price=Decimal('1.00'))], Decimal('0'))
        session.commit()
        session.expire_all()

        invoice = session.get(Invoice, invoice_id)
        assert [item.id for item in invoice.items] == ['item-1']
        assert invoice.items[0].line_total == Decimal('1800.00')
        assert invoice.total == Decimal('2034.00')

    def test_quote_keeps_status_and_records_conversion(self, session, alice, accepted_quote):
        convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)
        quote = session.get(Quote, accepted_quote.id)

        assert quote.status == 'accepted'
        assert _naive(quote.converted_at) == _naive(NOW)

    @pytest.mark.parametrize('status', ['draft', 'sent', 'rejected', 'expired'])
    def test_only_accepted_quotes_convert(self, session, alice, accepted_quote, status):
        session.query(Quote).filter(Quote.id == accepted_quote.id).update({Quote.status: status})
        session.commit()

        with pytest.raises(IllegalStateTransitionError, match='Only accepted quotes'):
            convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)
        assert session.query(Invoice).count() == 0

    def test_foreign_quote_is_not_found(self, session, bob, accepted_quote):
        with pytest.raises(NotFoundError):
            convert_quote_to_invoice(accepted_quote.id, session, bob, now=NOW)

    def test_duplicates_allowed_by_default(self, session, alice, accepted_quote):
        first = convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)
        second = convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW + timedelta(hours=1))

        assert first.id != second.id
        quote = session.get(Quote, accepted_quote.id)
        assert _naive(quote.converted_at) == _naive(NOW)

    def test_duplicate_guard(self, session, alice, accepted_quote):
        convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW, allow_duplicates=False)

        with pytest.raises(IllegalStateTransitionError, match='already been converted'):
            convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW, allow_duplicates=False)
        assert session.query(Invoice).count() == 1

    def test_persistence_failure_leaves_nothing_behind(self, session, alice, accepted_quote):
        failure = OperationalError('INSERT INTO invoices', {}, Exception('disk full'))

        with patch('sqlalchemy.orm.Session.commit', side_effect=failure):
            with pytest.raises(PersistenceError):
                convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW)

        assert session.query(Invoice).count() == 0
        assert session.get(Quote, accepted_quote.id).converted_at is None


class TestConversionApi:
    """POST /api/quotes/<id>/convert-to-invoice"""

    def test_convert(self, client, alice_headers, accepted_quote):
        before = datetime.now(timezone.utc)
        response = client.post(f'/api/quotes/{accepted_quote.id}/convert-to-invoice', headers=alice_headers)

        data = response.get_json()['data']
        assert response.status_code == 201
        assert data['status'] == 'unpaid'
        assert (data['subtotal'], data['tax'], data['total']) == ('1800.00', '234.00', '2034.00')
        assert data['quoteId'] == accepted_quote.id
        assert data['paidAt'] is None
        assert data['isOverdue'] is False

        due = datetime.fromisoformat(data['dueDate'])
        expected = _naive(before + timedelta(days=30))
        assert abs((_naive(due) - expected).total_seconds()) < 60

    def test_convert_draft_is_409(self, client, alice_headers, ontario_client):
        quote = client.post('/api/quotes', json={'clientId': ontario_client.id, 'items': []},
                            headers=alice_headers).get_json()['data']

        response = client.post(f"/api/quotes/{quote['id']}/convert-to-invoice", headers=alice_headers)

        assert response.status_code == 409
        assert response.get_json()['message'] == 'Only accepted quotes can be converted to invoices'

    def test_duplicate_guard_from_config(self, app, client, alice_headers, accepted_quote):
        app.config['ALLOW_DUPLICATE_QUOTE_CONVERSION'] = False
        try:
            url = f'/api/quotes/{accepted_quote.id}/convert-to-invoice'
            assert client.post(url, headers=alice_headers).status_code == 201
            assert client.post(url, headers=alice_headers).status_code == 409
        finally:
            app.config['ALLOW_DUPLICATE_QUOTE_CONVERSION'] = True


class TestInvoicesApi:
    """/api/invoices endpoints."""

    @pytest.fixture
    def invoice_id(self, session, alice, accepted_quote):
        return convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW).id

    def test_list_and_get(self, client, alice_headers, invoice_id):
        listed = client.get('/api/invoices', headers=alice_headers).get_json()['data']
        fetched = client.get(f'/api/invoices/{invoice_id}', headers=alice_headers).get_json()['data']

        assert [inv['id'] for inv in listed] == [invoice_id]
        assert fetched['items'][0]['unitPrice'] == '1800.00'

    def test_filter_by_status(self, client, alice_headers, invoice_id):
        assert client.get('/api/invoices?status=paid', headers=alice_headers).get_json()['data'] == []
        assert len(client.get('/api/invoices?status=unpaid', headers=alice_headers).get_json()['data']) == 1

    def test_mark_paid(self, client, alice_headers, invoice_id):
        response = client.post(f'/api/invoices/{invoice_id}/mark-paid',
                               json={'paidAt': '2026-11-02T10:30:00Z'}, headers=alice_headers)

        data = response.get_json()['data']
        assert response.status_code == 200
        assert data['status'] == 'paid'
        assert data['paidAt'].startswith('2026-11-02T10:30:00')

    def test_mark_paid_defaults_to_now(self, client, alice_headers, invoice_id):
        response = client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)
        assert response.get_json()['data']['paidAt'] is not None

    def test_mark_paid_twice_is_409(self, client, alice_headers, invoice_id):
        client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)
        response = client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)
        assert response.status_code == 409

    def test_mark_paid_bad_timestamp(self, client, alice_headers, invoice_id):
        response = client.post(f'/api/invoices/{invoice_id}/mark-paid',
                               json={'paidAt': 'yesterday'}, headers=alice_headers)
        assert response.status_code == 400

    def test_invoice_pdf(self, client, alice_headers, invoice_id):
        response = client.get(f'/api/invoices/{invoice_id}/pdf', headers=alice_headers)

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')


class TestInvoiceCrudApi:
    """POST/PUT/DELETE /api/invoices"""

    def _create(self, client, headers, payload):
        return client.post('/api/invoices', json=payload, headers=headers)

    def _create_ok(self, client, headers, payload):
        response = self._create(client, headers, payload)
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    def test_standalone_invoice_totals_come_from_items(self, client, alice_headers, quote_payload):
        quote_payload.update({'subtotal': '1.00', 'tax': '0.00', 'total': '1.00'})
        before = datetime.now(timezone.utc)

        data = self._create_ok(client, alice_headers, quote_payload)

        assert (data['subtotal'], data['tax'], data['total']) == ('250.00', '32.50', '282.50')
        assert data['status'] == 'unpaid'
        assert data['quoteId'] is None
        assert data['paidAt'] is None
        assert data['userId'] == 'user-alice'
        due = datetime.fromisoformat(data['dueDate'])
        assert abs((_naive(due) - _naive(before + timedelta(days=30))).total_seconds()) < 60

    def test_client_id_is_required(self, client, alice_headers, quote_payload):
        del quote_payload['clientId']
        assert self._create(client, alice_headers, quote_payload).status_code == 400

    def test_user_id_in_body_is_rejected(self, client, alice_headers, quote_payload):
        quote_payload['user_id'] = 'user-bob'
        assert self._create(client, alice_headers, quote_payload).status_code == 400

    def test_foreign_client_is_404(self, client, alice_headers, quote_payload, bob_client):
        quote_payload['clientId'] = bob_client.id
        response = self._create(client, alice_headers, quote_payload)
        assert response.status_code == 404
        assert response.get_json()['message'] == 'Client not found'

    def test_link_to_own_quote(self, client, alice_headers, quote_payload, accepted_quote):
        quote_payload['quoteId'] = accepted_quote.id
        assert self._create_ok(client, alice_headers, quote_payload)['quoteId'] == accepted_quote.id

    def test_link_to_foreign_quote_is_404(self, client, bob_headers, bob_client, accepted_quote):
        response = self._create(client, bob_headers, {
            'clientId': bob_client.id,
            'quoteId': accepted_quote.id,
            'items': [{'quantity': 1, 'unitPrice': '10.00'}],
        })
        assert response.status_code == 404
        assert response.get_json()['message'] == 'Quote not found'

    def test_create_as_paid(self, client, alice_headers, quote_payload):
        quote_payload.update({'status': 'paid', 'paidAt': '2026-10-01T09:00:00Z'})
        data = self._create_ok(client, alice_headers, quote_payload)
        assert data['status'] == 'paid'
        assert data['paidAt'].startswith('2026-10-01T09:00:00')

    def test_deposit_requires_amount(self, client, alice_headers, quote_payload):
        quote_payload['depositRequired'] = True
        response = self._create(client, alice_headers, quote_payload)
        assert response.status_code == 400
        assert 'depositAmount' in response.get_json()['message']

    def test_deposit(self, client, alice_headers, quote_payload):
        quote_payload.update({'depositRequired': True, 'depositAmount': '100.00'})
        data = self._create_ok(client, alice_headers, quote_payload)
        assert data['depositRequired'] is True
        assert data['depositAmount'] == '100.00'

    @pytest.fixture
    def invoice_id(self, session, alice, accepted_quote):
        return convert_quote_to_invoice(accepted_quote.id, session, alice, now=NOW).id

    def test_editing_items_recomputes_totals(self, client, alice_headers, invoice_id):
        response = client.put(f'/api/invoices/{invoice_id}', json={
            'items': [{'quantity': 1, 'unitPrice': '1000.00'}],
            'total': '5.00',
        }, headers=alice_headers)

        data = response.get_json()['data']
        assert response.status_code == 200
        assert (data['subtotal'], data['tax'], data['total']) == ('1000.00', '130.00', '1130.00')

    def test_notes_only_edit_keeps_totals(self, client, alice_headers, invoice_id):
        data = client.put(f'/api/invoices/{invoice_id}', json={'notes': 'Net 15'},
                          headers=alice_headers).get_json()['data']
        assert data['notes'] == 'Net 15'
        assert data['total'] == '2034.00'

    def test_paid_invoice_totals_are_frozen(self, client, alice_headers, invoice_id, session):
        client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)

        response = client.put(f'/api/invoices/{invoice_id}', json={
            'items': [{'quantity': 1, 'unitPrice': '1.00'}],
        }, headers=alice_headers)

        assert response.status_code == 409
        session.expire_all()
        assert session.get(Invoice, invoice_id).total == Decimal('2034.00')

    def test_paid_invoice_accepts_notes(self, client, alice_headers, invoice_id):
        client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)
        response = client.put(f'/api/invoices/{invoice_id}', json={'notes': 'Thanks'}, headers=alice_headers)
        assert response.status_code == 200

    def test_paid_invoice_cannot_be_reopened(self, client, alice_headers, invoice_id):
        client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers)
        response = client.put(f'/api/invoices/{invoice_id}', json={'status': 'unpaid'}, headers=alice_headers)
        assert response.status_code == 409

    def test_cancelled_invoice_cannot_be_paid(self, client, alice_headers, invoice_id):
        response = client.put(f'/api/invoices/{invoice_id}', json={'status': 'cancelled'}, headers=alice_headers)
        assert response.get_json()['data']['status'] == 'cancelled'

        assert client.post(f'/api/invoices/{invoice_id}/mark-paid', headers=alice_headers).status_code == 409

    def test_invalid_status_is_400(self, client, alice_headers, invoice_id):
        response = client.put(f'/api/invoices/{invoice_id}', json={'status': 'settled'}, headers=alice_headers)
        assert response.status_code == 400

    def test_delete(self, client, alice_headers, invoice_id, accepted_quote, session):
        response = client.delete(f'/api/invoices/{invoice_id}', headers=alice_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['id'] == invoice_id
        assert client.get(f'/api/invoices/{invoice_id}', headers=alice_headers).status_code == 404
        assert session.get(Quote, accepted_quote.id) is not None
