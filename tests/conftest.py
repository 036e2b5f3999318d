import pytest
from decimal import Decimal

from lumenr import create_app
from lumenr.database import create_all, drop_all, get_session
from lumenr.models import Client, Product, Service
from lumenr.services.auth_service import Principal


class FakeAuthClient:
    """Stands in for the identity provider: fixed token -> Principal map."""

    def __init__(self, principals):
        self.principals = principals

    def get_principal(self, token):
        return self.principals.get(token)


ALICE = Principal(user_id='user-alice', email='alice@example.com')
BOB = Principal(user_id='user-bob', email='bob@example.com')


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    app.extensions['lumenr_auth'] = FakeAuthClient({
        'token-alice': ALICE,
        'token-bob': BOB,
    })
    return app


@pytest.fixture(autouse=True)
def fresh_schema(app):
    """Every test starts from empty tables."""
    get_session().remove()
    drop_all()
    create_all()
    yield
    get_session().remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session shared with the app (scoped per thread)."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def alice_headers():
    return {'Authorization': 'Bearer token-alice'}


@pytest.fixture
def bob_headers():
    return {'Authorization': 'Bearer token-bob'}


def _persist(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    session.expunge(obj)
    return obj


@pytest.fixture(scope='function')
def ontario_client(session, alice):
    """Alice's client in Ontario (13% HST, auto-calculated)."""
    return _persist(session, Client(
        user_id=alice.user_id,
        name='Maple Renovations',
        email='billing@maple.example',
        company='Maple Renovations Inc.',
        country='Canada',
        province='Ontario',
        auto_calculate_tax=True,
    ))


@pytest.fixture(scope='function')
def untaxed_client(session, alice):
    """Alice's client without automatic tax."""
    return _persist(session, Client(
        user_id=alice.user_id,
        name='Harbor Cafe',
        email='owner@harbor.example',
        country='Canada',
        province='Alberta',
        auto_calculate_tax=False,
    ))


@pytest.fixture(scope='function')
def bob_client(session, bob):
    return _persist(session, Client(
        user_id=bob.user_id,
        name='Bob Customer',
        email='customer@bob.example',
        auto_calculate_tax=False,
    ))


@pytest.fixture(scope='function')
def product_panel(session, alice):
    return _persist(session, Product(
        user_id=alice.user_id,
        name='LED Panel',
        description='60x60 ceiling panel',
        price=Decimal('100.00'),
        active=True,
    ))


@pytest.fixture(scope='function')
def inactive_product(session, alice):
    return _persist(session, Product(
        user_id=alice.user_id,
        name='Halogen Bulb',
        description='Discontinued',
        price=Decimal('12.50'),
        active=False,
    ))


@pytest.fixture(scope='function')
def service_install(session, alice):
    return _persist(session, Service(
        user_id=alice.user_id,
        name='Installation',
        description='On-site installation, per fixture',
        unit_price=Decimal('50.00'),
        active=True,
    ))


@pytest.fixture(scope='function')
def bob_product(session, bob):
    return _persist(session, Product(
        user_id=bob.user_id,
        name='Bob Widget',
        price=Decimal('10.00'),
        active=True,
    ))


@pytest.fixture
def quote_payload(ontario_client):
    """Two panels and one installation for the Ontario client."""
    return {
        'clientId': ontario_client.id,
        'items': [
            {'id': 'item-a', 'kind': 'product', 'name': 'LED Panel', 'quantity': 2, 'unitPrice': '100.00'},
            {'id': 'item-b', 'kind': 'service', 'name': 'Installation', 'quantity': 1, 'unitPrice': '50.00'},
        ],
        'notes': 'Kitchen lighting',
    }
