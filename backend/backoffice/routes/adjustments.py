# Overview: Flask API routes for stock adjustments; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import json_errors
from ..services import adjustment_service, lifecycle_service
from ..validation import ValidationError


adjustments_bp = Blueprint("adjustments", __name__, url_prefix="/api/adjustments")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _adjustment_payload(adjustment) -> dict:
    return {"adjustment": adjustment.to_dict(), "actions": lifecycle_service.available_actions(adjustment)}


@adjustments_bp.post("")
@json_errors
def create_adjustment_route():
    """
    Create a DRAFT stock adjustment.

    Request body:
    {
        "store_id": 1,                    // required
        "reason": "Damaged in transit",   // required, max 128 chars
        "items": [{"product_id": 1, "quantity_delta": -2, "price_cents": 250}]
    }
    """
    adjustment = adjustment_service.create_adjustment(_json_body())
    current_app.logger.info("Created stock adjustment %s", adjustment.id)
    return jsonify(_adjustment_payload(adjustment)), 201


@adjustments_bp.get("/<int:adjustment_id>")
@json_errors
def get_adjustment_route(adjustment_id: int):
    adjustment = adjustment_service.get_adjustment(adjustment_id)
    return jsonify(_adjustment_payload(adjustment)), 200


@adjustments_bp.put("/<int:adjustment_id>")
@json_errors
def update_adjustment_route(adjustment_id: int):
    adjustment = adjustment_service.update_adjustment(adjustment_id, _json_body())
    current_app.logger.info("Updated stock adjustment %s", adjustment.id)
    return jsonify(_adjustment_payload(adjustment)), 200


@adjustments_bp.post("/<int:adjustment_id>/<action>")
@json_errors
def transition_adjustment_route(adjustment_id: int, action: str):
    """Stage action. Approving applies every line to the stock balances."""
    adjustment = adjustment_service.transition_adjustment(adjustment_id, action)
    current_app.logger.info(
        "Stock adjustment %s moved to %s via %s", adjustment.id, adjustment.stage, action
    )
    return jsonify(_adjustment_payload(adjustment)), 200


@adjustments_bp.delete("/<int:adjustment_id>")
@json_errors
def delete_adjustment_route(adjustment_id: int):
    adjustment_service.delete_adjustment(adjustment_id)
    current_app.logger.info("Deleted stock adjustment %s", adjustment_id)
    return jsonify({"deleted": True, "id": adjustment_id}), 200
