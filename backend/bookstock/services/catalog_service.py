# Overview: Minimal product catalog and per-location stock levels.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, StockLevel, Movement
from ..money import quantize_money


class CatalogError(Exception):
    """Raised when catalog operations fail."""
    pass


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def get_products(product_ids) -> dict[int, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(ids)).all()
    return {product.id: product for product in products}


def suggested_unit_price(product: Product) -> Decimal | None:
    """Current catalog price, used only to pre-fill a movement line."""
    if product.price is None:
        return None
    return quantize_money(Decimal(product.price))


def search_products(search: str | None = None, limit: int = 50) -> list[Product]:
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.reference.ilike(pattern)))
    return query.order_by(Product.name.asc()).limit(limit).all()


def create_product(name: str, price: Decimal | None = None, reference: str | None = None) -> Product:
    if not name or not name.strip():
        raise CatalogError("Product name is required")
    if price is not None and price < 0:
        raise CatalogError("Product price must not be negative")

    product = Product(
        name=name.strip(),
        reference=reference.strip() if reference else None,
        price=quantize_money(price) if price is not None else None,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise CatalogError(f"Product reference already in use: {reference!r}")
    return product


def receive_movement_items(movement: Movement) -> None:
    """
    Credit the destination location with every item of a movement.

    Runs inside the confirm transaction (flush only). Missing stock level rows
    are created at zero first.
    """
    for item in movement.items:
        level = (
            db.session.query(StockLevel)
            .filter_by(location_id=movement.destination_location_id, product_id=item.product_id)
            .with_for_update()  # ignored by SQLite
            .first()
        )
        if level is None:
            level = StockLevel(
                location_id=movement.destination_location_id,
                product_id=item.product_id,
                quantity=0,
            )
            db.session.add(level)
        level.quantity = (level.quantity or 0) + item.quantity
    db.session.flush()
