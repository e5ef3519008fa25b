# Overview: Pytest coverage for the admin-password gate in front of sensitive mutations.

"""
Sensitive Action Gate Tests

1. No password configured: gated actions run immediately
2. Password configured: the action waits as the session's pending action
3. Wrong password keeps it pending and is audited
4. Right password runs it exactly once
5. One pending action per session; the newest request wins
"""

import pytest
from salonledger.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from salonledger.models import Client, PendingAction, SecurityEvent, StockProduct, StockSale
from salonledger.services import gate_service, inventory_service, session_service
from salonledger.services.gate_service import (
    AddServiceLine,
    DeleteSale,
    DeleteStockProduct,
    EditClient,
    EditSale,
    EditStockProduct,
)

GATE_PASSWORD = "1234"


@pytest.fixture
def staff_session(staff_user):
    session, _token = session_service.create_session(staff_user)
    return session


@pytest.fixture
def gated(tenant, owner_user):
    gate_service.set_password(tenant.id, GATE_PASSWORD, user_id=owner_user.id)


class TestWithoutPassword:

    def test_action_runs_immediately(self, db_session, staff_scope, staff_session, salon_client):
        outcome = gate_service.request_action(
            staff_scope, staff_session.id, EditClient(client_id=salon_client.id, changes={"phone": "11888880000"}),
        )

        assert outcome.executed
        assert not outcome.password_required
        assert outcome.to_dict()["result"]["phone"] == "11888880000"
        assert db_session.query(PendingAction).count() == 0

    def test_failed_action_changes_nothing(self, db_session, staff_scope, staff_session, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)

        with pytest.raises(ConflictError):
            gate_service.request_action(staff_scope, staff_session.id, EditSale(sale_id=sale.id, changes={"quantity": 9}))

        assert db_session.get(StockProduct, product.id).quantity == 2
        assert db_session.get(StockSale, sale.id).quantity == 1


class TestWithPassword:

    def test_request_is_held(self, db_session, gated, staff_scope, staff_session, product):
        outcome = gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))

        assert outcome.password_required
        assert not outcome.executed
        assert outcome.to_dict()["pending_action"] == {"kind": "delete_stock_product", "product_id": product.id}
        assert db_session.get(StockProduct, product.id) is not None
        assert gate_service.get_pending(staff_scope, staff_session.id) == DeleteStockProduct(product_id=product.id)

    def test_wrong_password_keeps_pending(self, db_session, gated, staff_scope, staff_session, staff_user, product):
        gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))

        with pytest.raises(AuthorizationError) as exc:
            gate_service.submit(staff_scope, staff_session.id, "0000", user_id=staff_user.id)

        assert exc.value.details == {"pending_action": "delete_stock_product"}
        assert db_session.get(StockProduct, product.id) is not None
        assert gate_service.get_pending(staff_scope, staff_session.id) is not None
        rejected = db_session.query(SecurityEvent).filter_by(event_type="GATE_PASSWORD_REJECTED").all()
        assert len(rejected) == 1
        assert rejected[0].success is False

    def test_right_password_runs_once(self, db_session, gated, staff_scope, staff_session, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)
        gate_service.request_action(staff_scope, staff_session.id, DeleteSale(sale_id=sale.id))

        outcome = gate_service.submit(staff_scope, staff_session.id, GATE_PASSWORD)

        assert outcome.executed
        assert outcome.result == {"sale_id": sale.id, "restored_quantity": 1}
        assert db_session.get(StockSale, sale.id) is None
        assert db_session.get(StockProduct, product.id).quantity == 3
        assert gate_service.get_pending(staff_scope, staff_session.id) is None

        with pytest.raises(NotFoundError):
            gate_service.submit(staff_scope, staff_session.id, GATE_PASSWORD)
        assert db_session.get(StockProduct, product.id).quantity == 3

    def test_submit_without_pending(self, gated, staff_scope, staff_session):
        with pytest.raises(NotFoundError):
            gate_service.submit(staff_scope, staff_session.id, GATE_PASSWORD)

    def test_newest_request_replaces_pending(self, db_session, gated, staff_scope, staff_session, product, salon_client):
        gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))
        gate_service.request_action(
            staff_scope, staff_session.id, EditClient(client_id=salon_client.id, changes={"name": "Maria S."}),
        )

        assert db_session.query(PendingAction).count() == 1
        gate_service.submit(staff_scope, staff_session.id, GATE_PASSWORD)

        assert db_session.get(StockProduct, product.id) is not None
        assert db_session.get(Client, salon_client.id).name == "Maria S."

    def test_failing_action_stays_pending(self, db_session, gated, staff_scope, staff_session, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)
        gate_service.request_action(staff_scope, staff_session.id, EditSale(sale_id=sale.id, changes={"quantity": 9}))

        with pytest.raises(ConflictError):
            gate_service.submit(staff_scope, staff_session.id, GATE_PASSWORD)

        assert db_session.get(StockSale, sale.id).quantity == 1
        assert gate_service.get_pending(staff_scope, staff_session.id) is not None

    def test_discard(self, gated, staff_scope, staff_session, product):
        gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))

        assert gate_service.discard(staff_session.id) is True
        assert gate_service.discard(staff_session.id) is False
        assert gate_service.get_pending(staff_scope, staff_session.id) is None

    def test_logout_drops_pending(self, db_session, gated, staff_scope, staff_user, product):
        session, token = session_service.create_session(staff_user)
        gate_service.request_action(staff_scope, session.id, DeleteStockProduct(product_id=product.id))

        session_service.revoke_session(token)

        assert db_session.query(PendingAction).count() == 0

    def test_sessions_do_not_share_pending(self, gated, staff_scope, staff_user, staff_session, product):
        other_session, _ = session_service.create_session(staff_user)
        gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))

        with pytest.raises(NotFoundError):
            gate_service.submit(staff_scope, other_session.id, GATE_PASSWORD)


class TestPasswordStore:

    def test_set_and_validate(self, db_session, tenant):
        assert not gate_service.has_password(tenant.id)
        gate_service.set_password(tenant.id, GATE_PASSWORD)

        assert gate_service.has_password(tenant.id)
        assert gate_service.validate(tenant.id, GATE_PASSWORD)
        assert not gate_service.validate(tenant.id, "4321")
        assert db_session.query(SecurityEvent).filter_by(event_type="GATE_PASSWORD_CHANGED").count() == 1

    def test_short_password_rejected(self, tenant):
        with pytest.raises(ValidationError):
            gate_service.set_password(tenant.id, "123")
        assert not gate_service.has_password(tenant.id)

    def test_password_is_per_tenant(self, tenant, other_tenant):
        gate_service.set_password(tenant.id, GATE_PASSWORD)
        assert not gate_service.has_password(other_tenant.id)

    def test_remove_password_drops_pending(self, db_session, gated, tenant, staff_scope, staff_session, product):
        gate_service.request_action(staff_scope, staff_session.id, DeleteStockProduct(product_id=product.id))

        assert gate_service.remove_password(tenant.id) is True
        assert not gate_service.has_password(tenant.id)
        assert db_session.query(PendingAction).count() == 0
        assert gate_service.remove_password(tenant.id) is False


class TestActionPayloads:

    def test_add_service_line_payload(self):
        action = AddServiceLine(appointment_id=7, service_ids=(1, 2))
        assert action.to_dict() == {"kind": "add_service_line", "appointment_id": 7, "service_ids": [1, 2]}
        assert AddServiceLine.from_payload(action.to_payload()) == action

    def test_edit_stock_product_payload(self):
        action = EditStockProduct(product_id=3, changes={"quantity": 5})
        assert EditStockProduct.from_payload({"product_id": 3, "changes": {"quantity": 5}}) == action

    def test_malformed_payload_rejected(self):
        with pytest.raises(ValidationError) as exc:
            EditClient.from_payload({"client_id": 1, "surprise": True})
        assert exc.value.details == {"unknown": ["surprise"], "missing": ["changes"]}

    def test_every_kind_is_registered(self):
        assert set(gate_service.ACTION_KINDS) == {
            "edit_client",
            "cancel_service_line",
            "add_service_line",
            "edit_stock_product",
            "delete_stock_product",
            "edit_sale",
            "delete_sale",
        }
