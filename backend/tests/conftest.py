"""
Pytest fixtures for MikroPanel backend tests.

Provides the test app on in-memory SQLite, per-test table reset, one user
per role, and auth header helpers.
"""

import pytest
from mikropanel import create_app
from mikropanel.config import TestConfig
from mikropanel.extensions import db
from mikropanel.models import Client, Equipment
from mikropanel.models.inventory import EQUIPMENT_AVAILABLE, label_key
from mikropanel.services import zone_service
from mikropanel.services.auth_service import create_user


PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def zones(db_session):
    """Default zones: carvajal 500, santos-suarez 700, san-francisco 500, buenos-aires 500."""
    zone_service.seed_default_zones()
    db_session.commit()
    return {z.id: z for z in zone_service.list_zones()}


@pytest.fixture(scope='function')
def users(db_session):
    """One active user per role, username == role."""
    created = {}
    for role in ("owner", "admin", "tech", "envios", "viewer"):
        created[role] = create_user(username=role, password=PASSWORD, role=role)
    db_session.commit()
    return created


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client, users):
    """login("admin") -> Authorization headers for that role's user."""
    def _login(role: str) -> dict:
        return auth_headers(get_auth_token(client, role))
    return _login


def add_stock(label: str, qty: int, price_cents=None) -> list:
    """Insert qty AVAILABLE units of label directly."""
    units = [
        Equipment(
            label=label,
            label_key=label_key(label),
            category="general",
            price_cents=price_cents,
            state=EQUIPMENT_AVAILABLE,
            is_placeholder=False,
        )
        for _ in range(qty)
    ]
    db.session.add_all(units)
    db.session.commit()
    return units


def make_client(name="Ana", zone_id="carvajal", units=10, ip_host=10, **extra) -> Client:
    """Insert an active client directly, bypassing equipment hand-over."""
    client = Client(
        name=name,
        ip_address=f"192.168.10.{ip_host}",
        mac_address="AA:BB:CC:DD:EE:FF",
        service_units=units,
        zone_id=zone_id,
        is_active=extra.pop("is_active", True),
        created_by="test",
        **extra,
    )
    db.session.add(client)
    db.session.commit()
    return client


def client_payload(name="Ana", zone_id="carvajal", units=10, ip_host=10, **extra) -> dict:
    payload = {
        "name": name,
        "ip_address": f"192.168.10.{ip_host}",
        "mac_address": "aa:bb:cc:dd:ee:ff",
        "service_units": units,
        "zone_id": zone_id,
    }
    payload.update(extra)
    return payload
