# Overview: Flask API routes for inventory reports; validates filters and returns JSON payloads.

from flask import Blueprint, Response, jsonify, request

from ..decorators import json_errors
from ..services import inventory_report_service, lookup_service
from ..services.presentation import page_payload
from ..validation import serialize_filters


inventory_reports_bp = Blueprint("inventory_reports", __name__, url_prefix="/api/reports/inventory")


def _respond(report, filters: dict, *lookups: str):
    payload = page_payload(report, serialize_filters(filters), lookup_service.lookups(*lookups))
    return jsonify(payload), 200


@inventory_reports_bp.get("/stock-on-hand")
@json_errors
def stock_on_hand():
    filters = inventory_report_service.STOCK_ON_HAND_FILTERS.validate(request.args)
    report = inventory_report_service.stock_on_hand_report(**filters)
    return _respond(report, filters, "stores", "categories", "products")


@inventory_reports_bp.get("/valuation")
@json_errors
def valuation():
    filters = inventory_report_service.VALUATION_FILTERS.validate(request.args)
    report = inventory_report_service.valuation_report(**filters)
    return _respond(report, filters, "stores")


@inventory_reports_bp.get("/movement-history")
@json_errors
def movement_history():
    """
    Paginated product transaction log.

    Query parameters: store_id, product_id, start_date, end_date,
    transtype (one of the transaction types), page.
    """
    filters = inventory_report_service.MOVEMENT_FILTERS.validate(request.args)
    report = inventory_report_service.movement_history_report(**filters)
    return _respond(report, filters, "stores", "products", "transaction_types")


@inventory_reports_bp.get("/reorder-level")
@json_errors
def reorder_level():
    filters = inventory_report_service.REORDER_FILTERS.validate(request.args)
    report = inventory_report_service.reorder_level_report(**filters)
    return _respond(report, filters, "stores", "categories")


@inventory_reports_bp.get("/expiring-items")
@json_errors
def expiring_items():
    filters = inventory_report_service.EXPIRING_FILTERS.validate(request.args)
    report = inventory_report_service.expiring_items_report(**filters)
    return _respond(report, filters, "stores", "products")


@inventory_reports_bp.get("/slow-moving")
@json_errors
def slow_moving():
    filters = inventory_report_service.slow_moving_filters().validate(request.args)
    report = inventory_report_service.slow_moving_report(**filters)
    return _respond(report, filters, "stores")


@inventory_reports_bp.get("/product-list")
@json_errors
def product_list():
    filters = inventory_report_service.PRODUCT_LIST_FILTERS.validate(request.args)
    report = inventory_report_service.product_list_report(**filters)
    return _respond(report, filters, "categories")


@inventory_reports_bp.get("/product-list.csv")
@json_errors
def product_list_export():
    """Unpaginated product list as a CSV download; accepts category_id and search."""
    filters = inventory_report_service.PRODUCT_EXPORT_FILTERS.validate(request.args)
    body = inventory_report_service.product_list_csv(**filters)
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=product-list.csv"},
    )
