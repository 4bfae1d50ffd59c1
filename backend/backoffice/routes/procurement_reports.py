# Overview: Flask API routes for purchasing reports; validates filters and returns JSON payloads.

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..services import lookup_service, procurement_report_service
from ..services.presentation import page_payload
from ..validation import serialize_filters


procurement_reports_bp = Blueprint(
    "procurement_reports", __name__, url_prefix="/api/reports/procurement"
)


def _respond(report, filters: dict, *lookups: str):
    payload = page_payload(report, serialize_filters(filters), lookup_service.lookups(*lookups))
    return jsonify(payload), 200


@procurement_reports_bp.get("/purchase-orders")
@json_errors
def purchase_orders():
    filters = procurement_report_service.PURCHASE_ORDER_FILTERS.validate(request.args)
    report = procurement_report_service.purchase_order_history_report(**filters)
    return _respond(report, filters, "suppliers", "stores", "stages")


@procurement_reports_bp.get("/supplier-performance")
@json_errors
def supplier_performance():
    filters = procurement_report_service.SUPPLIER_PERFORMANCE_FILTERS.validate(request.args)
    report = procurement_report_service.supplier_performance_report(**filters)
    return _respond(report, filters, "suppliers")


@procurement_reports_bp.get("/item-purchases")
@json_errors
def item_purchases():
    filters = procurement_report_service.ITEM_PURCHASE_FILTERS.validate(request.args)
    report = procurement_report_service.item_purchase_history_report(**filters)
    return _respond(report, filters, "products", "suppliers")


@procurement_reports_bp.get("/spend-analysis")
@json_errors
def spend_analysis():
    filters = procurement_report_service.SPEND_FILTERS.validate(request.args)
    report = procurement_report_service.spend_analysis_report(**filters)
    return _respond(report, filters, "suppliers", "categories")
