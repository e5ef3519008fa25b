# Overview: Concurrent writers racing for the same slot and the same stock.

"""
Concurrency Tests

Two threads, each with its own app context and database connection, hit the
same check-then-write path at the same moment. Exactly one may win.

These run against a file database; the shared in-memory database used by the
other tests has a single connection and cannot race.
"""

import threading

import pytest
from salonledger import create_app
from salonledger.errors import ConflictError
from salonledger.extensions import db
from salonledger.models import Appointment, Branch, Client, Professional, Service, StockCategory, StockProduct, StockSale, Tenant
from salonledger.models.auth import ROLE_STAFF
from salonledger.services import appointment_service, inventory_service
from salonledger.services.tenant_service import TenantScope


@pytest.fixture
def race_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'NOTIFICATION_HOOK': None,
    })
    with app.app_context():
        db.create_all()
        tenant = Tenant(name="Studio Corrida", code="RACE")
        db.session.add(tenant)
        db.session.flush()
        branch = Branch(tenant_id=tenant.id, name="Centro", code="C")
        db.session.add(branch)
        db.session.flush()

        service = Service(tenant_id=tenant.id, name="Corte", price_cents=3000, duration_minutes=30)
        professional = Professional(tenant_id=tenant.id, branch_id=branch.id, name="Carla")
        client = Client(tenant_id=tenant.id, branch_id=branch.id, name="Maria")
        category = StockCategory(tenant_id=tenant.id, branch_id=branch.id, name="Shampoos")
        db.session.add_all([service, professional, client, category])
        db.session.flush()
        product = StockProduct(
            tenant_id=tenant.id, branch_id=branch.id, category_id=category.id,
            name="Shampoo", price_cents=1500, quantity=1,
        )
        db.session.add(product)
        db.session.commit()

        app.config["RACE_IDS"] = {
            "tenant": tenant.id,
            "branch": branch.id,
            "service": service.id,
            "professional": professional.id,
            "client": client.id,
            "product": product.id,
        }
        db.session.remove()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _race(app, work, workers=2):
    """Run work() in several threads released together; collect results or errors."""
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def runner():
        with app.app_context():
            barrier.wait()
            try:
                result = ("ok", work())
            except ConflictError as exc:
                result = ("conflict", exc)
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=runner) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return sorted(kind for kind, _ in outcomes)


def test_same_slot_booked_once(race_app):
    ids = race_app.config["RACE_IDS"]
    scope = TenantScope(tenant_id=ids["tenant"], role=ROLE_STAFF, branch_id=ids["branch"])

    def book():
        return appointment_service.create_appointment(
            scope, ids["client"], ids["service"], ids["professional"], "2026-03-02", "10:00",
        ).id

    assert _race(race_app, book) == ["conflict", "ok"]

    with race_app.app_context():
        assert db.session.query(Appointment).count() == 1


def test_last_unit_sold_once(race_app):
    ids = race_app.config["RACE_IDS"]
    scope = TenantScope(tenant_id=ids["tenant"], role=ROLE_STAFF, branch_id=ids["branch"])

    def sell():
        return inventory_service.record_sale(scope, ids["product"], 1).id

    assert _race(race_app, sell) == ["conflict", "ok"]

    with race_app.app_context():
        assert db.session.get(StockProduct, ids["product"]).quantity == 0
        assert db.session.query(StockSale).count() == 1
