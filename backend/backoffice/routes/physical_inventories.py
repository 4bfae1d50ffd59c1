# Overview: Flask API routes for physical inventory counts; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import json_errors
from ..services import lifecycle_service, lookup_service, physical_inventory_service
from ..services.presentation import page_payload
from ..validation import ValidationError, serialize_filters


physical_inventories_bp = Blueprint(
    "physical_inventories", __name__, url_prefix="/api/physical-inventories"
)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _count_payload(count) -> dict:
    return {
        "physical_inventory": count.to_dict(),
        "actions": lifecycle_service.available_actions(count, lifecycle_service.COUNT_TRANSITIONS),
    }


@physical_inventories_bp.get("")
@json_errors
def list_counts_route():
    """Open counts by default; pass stage=COMPLETED or CANCELLED to see closed ones."""
    filters = physical_inventory_service.LIST_FILTERS.validate(request.args)
    counts = physical_inventory_service.list_counts(**filters)
    return jsonify(page_payload(counts, serialize_filters(filters), lookup_service.lookups("stores", "stages"))), 200


@physical_inventories_bp.post("")
@json_errors
def create_count_route():
    """
    Create a DRAFT stock count.

    Request body:
    {
        "store_id": 1,                         // required
        "description": "Year-end count",       // optional, max 255 chars
        "items": [{
            "product_id": 1,
            "counted_quantity": 12,             // required, >= 0
            "expected_quantity": 14,            // optional, defaults to on hand
            "price_cents": 250,
            "expiry_date": "2026-03-01",        // optional
            "batch_no": "B-104"                 // optional
        }]
    }
    """
    count = physical_inventory_service.create_count(_json_body())
    current_app.logger.info("Created physical inventory %s", count.id)
    return jsonify(_count_payload(count)), 201


@physical_inventories_bp.get("/<int:count_id>")
@json_errors
def get_count_route(count_id: int):
    count = physical_inventory_service.get_count(count_id)
    return jsonify(_count_payload(count)), 200


@physical_inventories_bp.put("/<int:count_id>")
@json_errors
def update_count_route(count_id: int):
    count = physical_inventory_service.update_count(count_id, _json_body())
    current_app.logger.info("Updated physical inventory %s", count.id)
    return jsonify(_count_payload(count)), 200


@physical_inventories_bp.post("/<int:count_id>/<action>")
@json_errors
def transition_count_route(count_id: int, action: str):
    """Stage action: check, cancel or commit. Commit resets stock to the counted quantities."""
    count = physical_inventory_service.transition_count(count_id, action)
    current_app.logger.info(
        "Physical inventory %s moved to %s via %s", count.id, count.stage, action
    )
    return jsonify(_count_payload(count)), 200


@physical_inventories_bp.delete("/<int:count_id>")
@json_errors
def delete_count_route(count_id: int):
    physical_inventory_service.delete_count(count_id)
    current_app.logger.info("Deleted physical inventory %s", count_id)
    return jsonify({"deleted": True, "id": count_id}), 200
