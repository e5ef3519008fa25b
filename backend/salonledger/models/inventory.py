from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_PAYMENT_PENDING = "pending"
SALE_PAYMENT_PAID = "paid"
SALE_PAYMENT_STATUSES = (SALE_PAYMENT_PENDING, SALE_PAYMENT_PAID)


class StockCategory(db.Model):
    __tablename__ = "stock_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class StockProduct(db.Model):
    """
    Retail product with an on-hand quantity.

    quantity is the stock counter itself (not derived from a transaction log)
    and may never go negative; the CHECK constraint is the last line of
    defence behind the locked check-and-decrement in inventory_service.
    """
    __tablename__ = "stock_products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_products_quantity_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_stock_products_price_nonneg"),
        db.Index("ix_stock_products_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("stock_categories.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("StockCategory", backref=db.backref("products", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockProduct id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockSale(db.Model):
    """
    Retail sale of one product line.

    unit_price_cents and product_name are snapshots taken at sale time.
    product_id is cleared if the product is later deleted; the sale history
    survives with its snapshot.
    """
    __tablename__ = "stock_sales"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_stock_sales_quantity_pos"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_stock_sales_unit_price_nonneg"),
        db.Index("ix_stock_sales_tenant_sold", "tenant_id", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("stock_products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True)
    client_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default=SALE_PAYMENT_PENDING)
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("StockProduct", backref=db.backref("sales", lazy=True))

    def __repr__(self) -> str:
        return f"<StockSale id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "sold_at": to_utc_z(self.sold_at),
            "updated_at": to_utc_z(self.updated_at),
        }
