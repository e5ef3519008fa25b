# Overview: Pytest coverage for branch/tenant visibility rules.

"""
Tenancy Scope Tests

Rows carry tenant_id and an optional branch_id (NULL = shared). These tests
prove that:
1. Owners see every branch of their tenant, never another tenant
2. Staff see their branch plus shared rows only
3. Scoped lookups of hidden rows raise NotFoundError (no existence leak)
4. Writes aimed at a foreign branch are refused
"""

import pytest
from salonledger.errors import NotFoundError, TenantAccessError
from salonledger.models import (
    Appointment,
    Client,
    Expense,
    Professional,
    SecurityEvent,
    Service,
    StockCategory,
    StockProduct,
    StockSale,
    Supplier,
    SupplierProduct,
)
from salonledger.models.auth import ROLE_STAFF
from salonledger.services import (
    appointment_service,
    catalog_service,
    expense_service,
    inventory_service,
    supplier_service,
    tenant_service,
)
from salonledger.services.tenant_service import TenantScope

from conftest import auth_headers, get_auth_token


@pytest.fixture
def clients_everywhere(db_session, tenant, other_tenant, branch_a, branch_b, other_branch):
    rows = {
        "a": Client(tenant_id=tenant.id, branch_id=branch_a.id, name="Cliente A"),
        "b": Client(tenant_id=tenant.id, branch_id=branch_b.id, name="Cliente B"),
        "shared": Client(tenant_id=tenant.id, branch_id=None, name="Cliente Compartilhado"),
        "other": Client(tenant_id=other_tenant.id, branch_id=other_branch.id, name="Cliente Outro"),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


class TestVisibility:

    def test_owner_sees_all_branches_of_own_tenant(self, owner_scope, clients_everywhere):
        names = {c.name for c in catalog_service.list_clients(owner_scope)}
        assert names == {"Cliente A", "Cliente B", "Cliente Compartilhado"}

    def test_staff_sees_own_branch_and_shared(self, staff_scope, clients_everywhere):
        names = {c.name for c in catalog_service.list_clients(staff_scope)}
        assert names == {"Cliente A", "Cliente Compartilhado"}

    def test_staff_never_sees_other_branch(self, staff_scope, staff_b_scope, clients_everywhere):
        for scope in (staff_scope, staff_b_scope):
            for row in catalog_service.list_clients(scope):
                assert row.branch_id in (scope.branch_id, None)

    def test_staff_without_branch_sees_shared_only(self, tenant, clients_everywhere):
        scope = TenantScope(tenant_id=tenant.id, role=ROLE_STAFF, branch_id=None)
        names = {c.name for c in catalog_service.list_clients(scope)}
        assert names == {"Cliente Compartilhado"}

    def test_admits_matches_filter(self, staff_scope, clients_everywhere):
        assert staff_scope.admits(clients_everywhere["a"])
        assert staff_scope.admits(clients_everywhere["shared"])
        assert not staff_scope.admits(clients_everywhere["b"])
        assert not staff_scope.admits(clients_everywhere["other"])


class TestScopedGet:

    def test_get_visible_row(self, staff_scope, clients_everywhere):
        row = staff_scope.get(Client, clients_everywhere["a"].id)
        assert row.name == "Cliente A"

    def test_get_other_branch_is_not_found(self, staff_scope, clients_everywhere):
        with pytest.raises(NotFoundError) as exc:
            staff_scope.get(Client, clients_everywhere["b"].id)
        assert exc.value.audit_event == "CROSS_TENANT_ACCESS_DENIED"

    def test_get_other_tenant_is_not_found(self, owner_scope, clients_everywhere):
        with pytest.raises(NotFoundError):
            owner_scope.get(Client, clients_everywhere["other"].id)

    def test_get_missing_row_has_no_audit_event(self, owner_scope, clients_everywhere):
        with pytest.raises(NotFoundError) as exc:
            owner_scope.get(Client, 99999)
        assert exc.value.audit_event is None


class TestResolveBranch:

    def test_staff_defaults_to_own_branch(self, staff_scope, branch_a):
        assert staff_scope.resolve_branch(None) == branch_a.id

    def test_staff_may_create_shared_explicitly(self, staff_scope):
        assert staff_scope.resolve_branch(None, explicit_shared=True) is None

    def test_owner_defaults_to_shared(self, owner_scope):
        assert owner_scope.resolve_branch(None) is None

    def test_owner_may_target_any_own_branch(self, owner_scope, branch_b):
        assert owner_scope.resolve_branch(branch_b.id) == branch_b.id

    def test_staff_cannot_target_other_branch(self, staff_scope, branch_b):
        with pytest.raises(TenantAccessError):
            staff_scope.resolve_branch(branch_b.id)

    def test_owner_cannot_target_foreign_tenant_branch(self, owner_scope, other_branch):
        with pytest.raises(TenantAccessError):
            owner_scope.resolve_branch(other_branch.id)

    def test_create_client_in_foreign_branch_refused(self, staff_scope, branch_b, db_session):
        with pytest.raises(TenantAccessError):
            catalog_service.create_client(staff_scope, {"name": "Intruso"}, branch_id=branch_b.id)
        assert db_session.query(Client).filter_by(name="Intruso").count() == 0


class TestBranches:

    def test_list_branches_owner(self, owner_scope, branch_a, branch_b, other_branch):
        ids = {b.id for b in tenant_service.list_branches(owner_scope)}
        assert ids == {branch_a.id, branch_b.id}

    def test_list_branches_staff(self, staff_scope, branch_a, branch_b):
        ids = [b.id for b in tenant_service.list_branches(staff_scope)]
        assert ids == [branch_a.id]


class TestCrossTenantAudit:

    def test_api_cross_branch_read_is_logged(self, client, db_session, tenant, staff_user, clients_everywhere):
        token = get_auth_token(client, "SALON", "ana")
        hidden = clients_everywhere["b"]

        response = client.put(
            f"/api/clients/{hidden.id}",
            json={"name": "Renomeado"},
            headers=auth_headers(token),
        )

        assert response.status_code == 404
        assert response.json["type"] == "not_found"
        events = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").all()
        assert len(events) == 1
        assert events[0].tenant_id == tenant.id
        assert db_session.get(Client, hidden.id).name == "Cliente B"


@pytest.fixture
def ledgers_everywhere(db_session, tenant, other_tenant, branch_a, branch_b, other_branch):
    """One row of every branch-scoped ledger in A, B, shared and the other tenant."""
    placements = [
        (tenant.id, branch_a.id),
        (tenant.id, branch_b.id),
        (tenant.id, None),
        (other_tenant.id, other_branch.id),
    ]
    for tenant_id, branch_id in placements:
        tag = f"{tenant_id}:{branch_id}"
        service = Service(tenant_id=tenant_id, branch_id=branch_id, name=f"Corte {tag}", price_cents=3000, duration_minutes=30)
        professional = Professional(tenant_id=tenant_id, branch_id=branch_id, name=f"Prof {tag}")
        client = Client(tenant_id=tenant_id, branch_id=branch_id, name=f"Cliente {tag}")
        category = StockCategory(tenant_id=tenant_id, branch_id=branch_id, name=f"Categoria {tag}")
        supplier = Supplier(tenant_id=tenant_id, branch_id=branch_id, name=f"Fornecedor {tag}")
        db_session.add_all([service, professional, client, category, supplier])
        db_session.flush()

        product = StockProduct(
            tenant_id=tenant_id, branch_id=branch_id, category_id=category.id,
            name=f"Produto {tag}", price_cents=1000, quantity=5,
        )
        db_session.add(product)
        db_session.flush()
        db_session.add_all([
            Appointment(
                tenant_id=tenant_id, branch_id=branch_id, client_id=client.id, service_id=service.id,
                professional_id=professional.id, date="2026-03-02", time="10:00", status="scheduled",
                payment_status="pending", total_price_cents=3000,
            ),
            StockSale(
                tenant_id=tenant_id, branch_id=branch_id, product_id=product.id, product_name=product.name,
                quantity=1, unit_price_cents=1000, total_price_cents=1000, payment_status="paid",
            ),
            SupplierProduct(tenant_id=tenant_id, branch_id=branch_id, supplier_id=supplier.id, name=f"Lote {tag}"),
            Expense(
                tenant_id=tenant_id, branch_id=branch_id, description=f"Conta {tag}",
                amount_cents=5000, expense_date="2026-03-02",
            ),
        ])
    db_session.commit()


LEDGER_LISTS = {
    "appointments": appointment_service.list_appointments,
    "services": catalog_service.list_services,
    "professionals": catalog_service.list_professionals,
    "clients": catalog_service.list_clients,
    "categories": inventory_service.list_categories,
    "products": inventory_service.list_products,
    "sales": inventory_service.list_sales,
    "suppliers": supplier_service.list_suppliers,
    "supplier_products": supplier_service.list_supplier_products,
    "expenses": expense_service.list_expenses,
}


class TestEveryLedgerIsScoped:

    @pytest.mark.parametrize("ledger", sorted(LEDGER_LISTS))
    def test_staff_lists_only_own_branch_and_shared(self, staff_scope, branch_a, tenant, ledgers_everywhere, ledger):
        rows = LEDGER_LISTS[ledger](staff_scope)

        assert {(r.tenant_id, r.branch_id) for r in rows} == {(tenant.id, branch_a.id), (tenant.id, None)}

    @pytest.mark.parametrize("ledger", sorted(LEDGER_LISTS))
    def test_owner_lists_whole_tenant_only(self, owner_scope, tenant, ledgers_everywhere, ledger):
        rows = LEDGER_LISTS[ledger](owner_scope)

        assert len(rows) == 3
        assert all(r.tenant_id == tenant.id for r in rows)
