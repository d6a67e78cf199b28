# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..money import format_money
from ..services import catalog_service
from ..validation import MovementError, optional_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

MAX_SEARCH_LIMIT = 200


@products_bp.get("")
def list_products():
    """
    Search the catalog by name or reference.

    Query parameters:
        search: Substring (case-insensitive)
        limit: Max rows (default 50, max 200)
    """
    try:
        limit = optional_int(request.args.get("limit"), "limit")
    except MovementError as e:
        return jsonify(e.to_dict()), e.status_code

    limit = 50 if limit is None else max(1, min(limit, MAX_SEARCH_LIMIT))
    products = catalog_service.search_products(request.args.get("search"), limit=limit)
    return jsonify([product.to_dict() for product in products]), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    """Product with the unit price a new movement line would be pre-filled with."""
    product = catalog_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found", "code": "NOT_FOUND", "details": {"product_id": product_id}}), 404

    payload = product.to_dict()
    payload["suggested_unit_price"] = format_money(catalog_service.suggested_unit_price(product))
    return jsonify(payload), 200
