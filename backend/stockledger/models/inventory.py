from __future__ import annotations

from ..extensions import db
from .mixins import ProductMixin, BalanceMixin, MovementMixin


class Product(ProductMixin, db.Model):
    """
    Product master data.

    Names are unique case-insensitively. Deleting a product removes its
    balance row and its whole movement history (see the store's
    delete_product).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category={self.category!r}>"


db.Index("uq_products_name_ci", db.func.lower(Product.__table__.c.name), unique=True)


class Balance(BalanceMixin, db.Model):
    """
    Cached running balance for one product.

    INVARIANT: quantity and total_value equal the sums of quantity_change and
    total_price over the product's movements. Only the ledger engine writes
    this table. version_id guards the read-modify-write against concurrent
    writers (StaleDataError is retried by the store).
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Float, nullable=False, default=0.0)
    # Last writer wins; not restored when a movement is deleted
    unit = db.Column(db.String(32), nullable=False)
    total_value = db.Column(db.Float, nullable=False, default=0.0)

    last_updated = db.Column(db.DateTime, nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Balance product_id={self.product_id} quantity={self.quantity} unit={self.unit!r}>"


class InventoryMovement(MovementMixin, db.Model):
    """
    Append-only ledger entry. Never updated; deleted only through the ledger
    engine (which reverses it on the balance) or a product cascade.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_date", "product_id", "movement_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_change = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    total_price = db.Column(db.Float, nullable=False)

    movement_type = db.Column(db.String(32), nullable=False, default="update")

    # Server-assigned at creation
    movement_date = db.Column(db.DateTime, nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement id={self.id} product_id={self.product_id} "
            f"quantity_change={self.quantity_change}>"
        )
