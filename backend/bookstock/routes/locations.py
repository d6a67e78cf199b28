# Overview: Flask API routes for stock locations; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..services import location_service


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


def _path_ref(ref: str):
    # URL segments are always text: digits address an id, anything else a code
    return int(ref) if ref.isascii() and ref.isdigit() else ref


@locations_bp.get("")
def list_locations():
    locations = location_service.list_locations()
    return jsonify([location.to_dict() for location in locations]), 200


@locations_bp.get("/<ref>")
def get_location(ref: str):
    try:
        location = location_service.resolve_location(_path_ref(ref))
    except location_service.LocationError as exc:
        return jsonify({"error": str(exc), "code": "NOT_FOUND", "details": {"location": ref}}), 404
    return jsonify(location.to_dict()), 200


@locations_bp.get("/<ref>/stock")
def get_location_stock(ref: str):
    """
    On-hand quantities at a location.

    Returns:
        200: {location, levels: [{product_id, product_name, quantity}, ...]}
        404: Location not found
    """
    try:
        location = location_service.resolve_location(_path_ref(ref))
    except location_service.LocationError as exc:
        return jsonify({"error": str(exc), "code": "NOT_FOUND", "details": {"location": ref}}), 404

    levels = location_service.get_stock_levels(location.id)
    return jsonify({
        "location": location.to_dict(),
        "levels": [level.to_dict() for level in levels],
    }), 200
