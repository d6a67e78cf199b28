from __future__ import annotations

from ..extensions import db
from bookstock.money import format_money
from bookstock.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog entry.

    `price` is the current catalog price. It is only read when a movement is
    being created, to suggest a unit price; movement items keep their own copy.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("reference", name="uq_products_reference"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "reference": self.reference,
            "price": format_money(self.price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLevel(db.Model):
    """On-hand quantity of a product at a location."""
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("location_id", "product_id", name="uq_stock_levels_location_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    location = db.relationship("StockLocation")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
