# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase Order Routes

Purchase orders are created as DRAFT and move through
check -> approve -> complete (or cancel). Only DRAFT and CHECKED orders can
be edited; only DRAFT orders can be deleted.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import json_errors
from ..services import lifecycle_service, purchase_service
from ..validation import ValidationError


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _purchase_payload(purchase) -> dict:
    return {"purchase": purchase.to_dict(), "actions": lifecycle_service.available_actions(purchase)}


@purchases_bp.post("")
@json_errors
def create_purchase_route():
    """
    Create a purchase order.

    Request body:
    {
        "supplier_id": 1,                 // required
        "store_id": 1,                    // optional
        "transacted_on": "2026-01-15",    // optional, defaults to now
        "user_id": 1,                     // optional
        "remarks": "...",                 // optional
        "items": [{"product_id": 1, "quantity": 10, "price_cents": 250}]
    }
    """
    purchase = purchase_service.create_purchase(_json_body())
    current_app.logger.info("Created purchase %s with %s item(s)", purchase.id, len(purchase.items))
    return jsonify(_purchase_payload(purchase)), 201


@purchases_bp.get("/<int:purchase_id>")
@json_errors
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(purchase_id)
    return jsonify(_purchase_payload(purchase)), 200


@purchases_bp.put("/<int:purchase_id>")
@json_errors
def update_purchase_route(purchase_id: int):
    purchase = purchase_service.update_purchase(purchase_id, _json_body())
    current_app.logger.info("Updated purchase %s", purchase.id)
    return jsonify(_purchase_payload(purchase)), 200


@purchases_bp.post("/<int:purchase_id>/<action>")
@json_errors
def transition_purchase_route(purchase_id: int, action: str):
    """Stage action: check, approve, complete or cancel."""
    purchase = purchase_service.transition_purchase(purchase_id, action)
    current_app.logger.info("Purchase %s moved to %s via %s", purchase.id, purchase.stage, action)
    return jsonify(_purchase_payload(purchase)), 200


@purchases_bp.delete("/<int:purchase_id>")
@json_errors
def delete_purchase_route(purchase_id: int):
    purchase_service.delete_purchase(purchase_id)
    current_app.logger.info("Deleted purchase %s", purchase_id)
    return jsonify({"deleted": True, "id": purchase_id}), 200
