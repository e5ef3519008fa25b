"""
Pytest fixtures for SalonLedger backend tests.

Provides test database setup, tenant/branch fixtures, scopes and test client.

Layout used by most tests:
- tenant "SALON" with branches A and B, plus tenant "OTHER" with one branch
- shared (branch_id NULL) services Corte (3000, 30 min) and Barba (2000, 20 min)
- a professional and a client in branch A
- shared business hours 09:00-18:00 every day
"""

import pytest
from salonledger import create_app
from salonledger.extensions import db
from salonledger.models import (
    Branch,
    BusinessHours,
    Client,
    Professional,
    Service,
    StockCategory,
    StockProduct,
    Tenant,
    User,
)
from salonledger.models.auth import ROLE_OWNER, ROLE_STAFF
from salonledger.services.auth_service import hash_password
from salonledger.services.tenant_service import TenantScope

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATION_HOOK': None,
    })

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
def tenant(db_session):
    tenant = Tenant(name="Studio Bela", code="SALON", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    tenant = Tenant(name="Outro Studio", code="OTHER", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch_a(db_session, tenant):
    branch = Branch(tenant_id=tenant.id, name="Centro", code="A", timezone="America/Sao_Paulo")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, tenant):
    branch = Branch(tenant_id=tenant.id, name="Zona Sul", code="B")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session, other_tenant):
    branch = Branch(tenant_id=other_tenant.id, name="Matriz", code="X")
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_user(db_session, tenant, username, role, branch=None):
    user = User(
        tenant_id=tenant.id,
        branch_id=branch.id if branch else None,
        username=username,
        email=f"{username}@salon.test",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_user(db_session, tenant):
    return _make_user(db_session, tenant, "owner", ROLE_OWNER)


@pytest.fixture(scope='function')
def staff_user(db_session, tenant, branch_a):
    return _make_user(db_session, tenant, "ana", ROLE_STAFF, branch_a)


@pytest.fixture(scope='function')
def staff_b_user(db_session, tenant, branch_b):
    return _make_user(db_session, tenant, "bruno", ROLE_STAFF, branch_b)


@pytest.fixture(scope='function')
def owner_scope(tenant):
    return TenantScope(tenant_id=tenant.id, role=ROLE_OWNER)


@pytest.fixture(scope='function')
def staff_scope(tenant, branch_a):
    return TenantScope(tenant_id=tenant.id, role=ROLE_STAFF, branch_id=branch_a.id)


@pytest.fixture(scope='function')
def staff_b_scope(tenant, branch_b):
    return TenantScope(tenant_id=tenant.id, role=ROLE_STAFF, branch_id=branch_b.id)


@pytest.fixture(scope='function')
def other_scope(other_tenant, other_branch):
    return TenantScope(tenant_id=other_tenant.id, role=ROLE_OWNER)


@pytest.fixture(scope='function')
def corte(db_session, tenant):
    service = Service(tenant_id=tenant.id, name="Corte", price_cents=3000, duration_minutes=30)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def barba(db_session, tenant):
    service = Service(tenant_id=tenant.id, name="Barba", price_cents=2000, duration_minutes=20)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def professional(db_session, tenant, branch_a):
    professional = Professional(tenant_id=tenant.id, branch_id=branch_a.id, name="Carla")
    db_session.add(professional)
    db_session.commit()
    return professional


@pytest.fixture(scope='function')
def salon_client(db_session, tenant, branch_a):
    client = Client(tenant_id=tenant.id, branch_id=branch_a.id, name="Maria Silva", phone="11999990000")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture(scope='function')
def business_hours(db_session, tenant):
    rows = [
        BusinessHours(tenant_id=tenant.id, weekday=weekday, is_open=True, opens_at="09:00", closes_at="18:00")
        for weekday in range(7)
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def category(db_session, tenant, branch_a):
    category = StockCategory(tenant_id=tenant.id, branch_id=branch_a.id, name="Shampoos")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product(db_session, tenant, branch_a, category):
    """3 units in stock at 1500 cents."""
    product = StockProduct(
        tenant_id=tenant.id,
        branch_id=branch_a.id,
        category_id=category.id,
        name="Shampoo Hidratante",
        price_cents=1500,
        quantity=3,
    )
    db_session.add(product)
    db_session.commit()
    return product


def get_auth_token(client, tenant_code: str, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'tenant': tenant_code,
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
