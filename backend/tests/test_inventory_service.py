# Overview: Pytest coverage for stock invariants, sale edits and destructive deletes.

"""
Inventory Ledger Tests

Stock on hand never goes negative:
1. Overselling is refused and leaves nothing behind
2. Editing a sale moves stock by exactly the quantity delta
3. Deleting a sale puts its units back
4. Deleting a category needs confirmation and keeps sale history
"""

import pytest
from salonledger.errors import ConflictError, IntegrityError, NotFoundError, TenantAccessError, ValidationError
from salonledger.models import StockCategory, StockProduct, StockSale
from salonledger.services import inventory_service


class TestRecordSale:

    def test_oversell_rejected_without_side_effects(self, db_session, staff_scope, product):
        with pytest.raises(ConflictError) as exc:
            inventory_service.record_sale(staff_scope, product.id, 5)

        assert exc.value.details == {"product_id": product.id, "requested_quantity": 5, "on_hand": 3}
        assert db_session.get(StockProduct, product.id).quantity == 3
        assert db_session.query(StockSale).count() == 0

    def test_sale_decrements_and_snapshots(self, db_session, staff_scope, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 2, client_name="Maria")

        assert db_session.get(StockProduct, product.id).quantity == 1
        assert sale.product_name == "Shampoo Hidratante"
        assert sale.unit_price_cents == 1500
        assert sale.total_price_cents == 3000
        assert sale.payment_status == "pending"

    def test_selling_exact_stock_leaves_zero(self, db_session, staff_scope, product):
        inventory_service.record_sale(staff_scope, product.id, 3)
        assert db_session.get(StockProduct, product.id).quantity == 0
        with pytest.raises(ConflictError):
            inventory_service.record_sale(staff_scope, product.id, 1)

    def test_unit_price_override_is_frozen(self, db_session, staff_scope, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1, unit_price_cents=1200)
        inventory_service.update_product(staff_scope, product.id, {"price_cents": 9900})

        assert db_session.get(StockSale, sale.id).unit_price_cents == 1200

    @pytest.mark.parametrize("quantity", [0, -1, "2", True])
    def test_bad_quantity_rejected(self, staff_scope, product, quantity):
        with pytest.raises(ValidationError):
            inventory_service.record_sale(staff_scope, product.id, quantity)

    def test_unknown_payment_status_rejected(self, staff_scope, product):
        with pytest.raises(ValidationError):
            inventory_service.record_sale(staff_scope, product.id, 1, payment_status="awaiting_payment")

    def test_other_branch_product_not_found(self, db_session, staff_b_scope, product):
        with pytest.raises(NotFoundError):
            inventory_service.record_sale(staff_b_scope, product.id, 1)
        assert db_session.get(StockProduct, product.id).quantity == 3


class TestEditSale:

    @pytest.fixture
    def sale(self, staff_scope, product):
        # leaves 2 on hand
        return inventory_service.record_sale(staff_scope, product.id, 1)

    def test_increase_takes_delta_from_stock(self, db_session, staff_scope, product, sale):
        edited = inventory_service.edit_sale(staff_scope, sale.id, {"quantity": 3})

        assert edited.quantity == 3
        assert edited.total_price_cents == 4500
        assert db_session.get(StockProduct, product.id).quantity == 0

    def test_increase_beyond_stock_rejected(self, db_session, staff_scope, product, sale):
        with pytest.raises(ConflictError):
            inventory_service.edit_sale(staff_scope, sale.id, {"quantity": 4})
        assert db_session.get(StockSale, sale.id).quantity == 1
        assert db_session.get(StockProduct, product.id).quantity == 2

    def test_decrease_returns_units(self, db_session, staff_scope, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 3)
        inventory_service.edit_sale(staff_scope, sale.id, {"quantity": 1})
        assert db_session.get(StockProduct, product.id).quantity == 2

    def test_payment_fields(self, staff_scope, sale):
        edited = inventory_service.edit_sale(staff_scope, sale.id, {"payment_status": "paid", "payment_method": "pix"})
        assert edited.payment_status == "paid"
        assert edited.payment_method == "pix"

    def test_unknown_field_rejected(self, staff_scope, sale):
        with pytest.raises(ValidationError):
            inventory_service.edit_sale(staff_scope, sale.id, {"unit_price_cents": 1})


class TestDeleteSale:

    def test_delete_restores_stock(self, db_session, staff_scope, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 2)
        result = inventory_service.delete_sale(staff_scope, sale.id)

        assert result == {"sale_id": sale.id, "restored_quantity": 2}
        assert db_session.get(StockProduct, product.id).quantity == 3
        assert db_session.get(StockSale, sale.id) is None


class TestProducts:

    def test_negative_stock_correction_rejected(self, db_session, staff_scope, product):
        with pytest.raises(IntegrityError):
            inventory_service.update_product(staff_scope, product.id, {"quantity": -1})
        assert db_session.get(StockProduct, product.id).quantity == 3

    def test_restock(self, staff_scope, product):
        updated = inventory_service.update_product(staff_scope, product.id, {"quantity": 10})
        assert updated.quantity == 10

    def test_create_product_in_category(self, staff_scope, category, branch_a):
        created = inventory_service.create_product(
            staff_scope, {"category_id": category.id, "name": "Condicionador", "price_cents": 1800, "quantity": 4},
        )
        assert created.branch_id == branch_a.id
        assert created.quantity == 4

    def test_delete_product_keeps_sales(self, db_session, staff_scope, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)
        result = inventory_service.delete_product(staff_scope, product.id)

        assert result["detached_sales"] == 1
        kept = db_session.get(StockSale, sale.id)
        assert kept.product_id is None
        assert kept.product_name == "Shampoo Hidratante"

    def test_move_product(self, db_session, tenant, branch_a, staff_scope, product):
        other = StockCategory(tenant_id=tenant.id, branch_id=branch_a.id, name="Cremes")
        db_session.add(other)
        db_session.commit()

        moved = inventory_service.move_product(staff_scope, product.id, other.id)
        assert moved.category_id == other.id


class TestDeleteCategory:

    def test_confirmation_required(self, db_session, staff_scope, category, product):
        with pytest.raises(ValidationError):
            inventory_service.delete_category(staff_scope, category.id)
        assert db_session.get(StockCategory, category.id) is not None
        assert db_session.get(StockProduct, product.id) is not None

    def test_confirmed_delete_keeps_sale_history(self, db_session, staff_scope, category, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)

        result = inventory_service.delete_category(staff_scope, category.id, confirm=True)

        assert result == {"category_id": category.id, "deleted_products": 1, "detached_sales": 1}
        assert db_session.get(StockProduct, product.id) is None
        kept = db_session.get(StockSale, sale.id)
        assert kept.product_id is None
        assert kept.product_name == "Shampoo Hidratante"
        assert kept.total_price_cents == 1500

    def test_orphaned_sale_quantity_is_frozen(self, db_session, staff_scope, category, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 1)
        inventory_service.delete_category(staff_scope, category.id, confirm=True)

        with pytest.raises(IntegrityError):
            inventory_service.edit_sale(staff_scope, sale.id, {"quantity": 2})

        # non-quantity edits still go through
        edited = inventory_service.edit_sale(staff_scope, sale.id, {"payment_status": "paid"})
        assert edited.payment_status == "paid"

    def test_deleting_orphaned_sale_restores_nothing(self, staff_scope, category, product):
        sale = inventory_service.record_sale(staff_scope, product.id, 2)
        inventory_service.delete_category(staff_scope, category.id, confirm=True)

        result = inventory_service.delete_sale(staff_scope, sale.id)
        assert result["restored_quantity"] == 0

    def test_shared_category_with_other_branch_products_is_refused(
        self, db_session, tenant, branch_b, staff_scope, product,
    ):
        shared = StockCategory(tenant_id=tenant.id, branch_id=None, name="Compartilhada")
        db_session.add(shared)
        db_session.flush()
        hidden = StockProduct(
            tenant_id=tenant.id, branch_id=branch_b.id, category_id=shared.id,
            name="Pomada Zona Sul", price_cents=2500, quantity=5,
        )
        mine = StockProduct(
            tenant_id=tenant.id, branch_id=product.branch_id, category_id=shared.id,
            name="Pomada Centro", price_cents=2500, quantity=2,
        )
        db_session.add_all([hidden, mine])
        db_session.commit()

        with pytest.raises(TenantAccessError):
            inventory_service.delete_category(staff_scope, shared.id, confirm=True)

        assert db_session.get(StockCategory, shared.id) is not None
        assert db_session.get(StockProduct, hidden.id).quantity == 5
        assert db_session.get(StockProduct, mine.id) is not None

    def test_owner_may_delete_shared_category(self, db_session, tenant, branch_b, owner_scope, product):
        shared = StockCategory(tenant_id=tenant.id, branch_id=None, name="Compartilhada")
        db_session.add(shared)
        db_session.flush()
        db_session.add(StockProduct(
            tenant_id=tenant.id, branch_id=branch_b.id, category_id=shared.id,
            name="Pomada Zona Sul", price_cents=2500, quantity=5,
        ))
        db_session.commit()

        result = inventory_service.delete_category(owner_scope, shared.id, confirm=True)
        assert result["deleted_products"] == 1


class TestStockBounds:
    """
    Whatever mix of sales, edits and deletes runs against a product, stock
    on hand stays within [0, initial] and every unit is either on the shelf
    or on a live sale.
    """

    INITIAL = 3

    @pytest.mark.parametrize("steps", [
        [("sell", 2), ("sell", 2), ("sell", 1), ("delete", 0), ("sell", 3)],
        [("sell", 1), ("edit", 0, 3), ("edit", 0, 4), ("edit", 0, 1), ("sell", 2), ("sell", 1)],
        [("sell", 3), ("edit", 0, 2), ("sell", 2), ("sell", 1), ("delete", 0), ("edit", 1, 3), ("sell", 1)],
        [("sell", 1), ("sell", 1), ("sell", 1), ("delete", 1), ("edit", 0, 2), ("delete", 2), ("delete", 0)],
        [("sell", 4), ("sell", 3), ("edit", 0, 1), ("edit", 0, 5), ("delete", 0), ("delete", 0)],
    ])
    def test_quantity_stays_in_bounds(self, db_session, staff_scope, product, steps):
        sales = []
        for step in steps:
            try:
                if step[0] == "sell":
                    sales.append(inventory_service.record_sale(staff_scope, product.id, step[1]).id)
                elif step[0] == "edit":
                    inventory_service.edit_sale(staff_scope, sales[step[1]], {"quantity": step[2]})
                else:
                    inventory_service.delete_sale(staff_scope, sales[step[1]])
            except (ConflictError, NotFoundError):
                # refused steps must leave everything as it was
                pass

            on_hand = db_session.get(StockProduct, product.id).quantity
            sold = sum(s.quantity for s in db_session.query(StockSale).filter_by(product_id=product.id))
            assert 0 <= on_hand <= self.INITIAL
            assert on_hand + sold == self.INITIAL
