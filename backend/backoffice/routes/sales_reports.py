# Overview: Flask API routes for sales reports; validates filters and returns JSON payloads.

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..services import lookup_service, sales_report_service
from ..services.presentation import page_payload
from ..validation import serialize_filters


sales_reports_bp = Blueprint("sales_reports", __name__, url_prefix="/api/reports/sales")


def _respond(report, filters: dict, *lookups: str):
    payload = page_payload(report, serialize_filters(filters), lookup_service.lookups(*lookups))
    return jsonify(payload), 200


@sales_reports_bp.get("/daily")
@json_errors
def daily():
    filters = sales_report_service.DAILY_FILTERS.validate(request.args)
    report = sales_report_service.daily_report(**filters)
    return _respond(report, filters, "stores")


@sales_reports_bp.get("/summary")
@json_errors
def summary():
    filters = sales_report_service.SUMMARY_FILTERS.validate(request.args)
    report = sales_report_service.summary_report(**filters)
    return _respond(report, filters, "stores")


@sales_reports_bp.get("/by-item")
@json_errors
def by_item():
    filters = sales_report_service.BY_ITEM_FILTERS.validate(request.args)
    report = sales_report_service.by_item_report(**filters)
    return _respond(report, filters, "stores", "products", "categories")


@sales_reports_bp.get("/cashier-session")
@json_errors
def cashier_session():
    filters = sales_report_service.CASHIER_SESSION_FILTERS.validate(request.args)
    report = sales_report_service.cashier_session_report(**filters)
    return _respond(report, filters, "users", "stores")


@sales_reports_bp.get("/payment-methods")
@json_errors
def payment_methods():
    filters = sales_report_service.PAYMENT_METHOD_FILTERS.validate(request.args)
    report = sales_report_service.payment_methods_report(**filters)
    return _respond(report, filters, "stores", "users", "payment_types")


@sales_reports_bp.get("/customer-history")
@json_errors
def customer_history():
    filters = sales_report_service.CUSTOMER_HISTORY_FILTERS.validate(request.args)
    report = sales_report_service.customer_history_report(**filters)
    return _respond(report, filters, "customers")


@sales_reports_bp.get("/eod-summary")
@json_errors
def eod_summary():
    filters = sales_report_service.EOD_FILTERS.validate(request.args)
    report = sales_report_service.eod_summary_report(**filters)
    return _respond(report, filters, "stores", "users", "payment_types")


@sales_reports_bp.get("/custom")
@json_errors
def custom_options():
    payload = page_payload(
        {"options": sales_report_service.custom_report_options()},
        {},
        lookup_service.lookups("customers", "users", "stores", "products", "categories"),
    )
    return jsonify(payload), 200


@sales_reports_bp.post("/custom")
@json_errors
def custom_run():
    body = request.get_json(silent=True)
    report, filters = sales_report_service.custom_report(body)
    report["options"] = sales_report_service.custom_report_options()
    payload = page_payload(
        report,
        filters,
        lookup_service.lookups("customers", "users", "stores", "products", "categories"),
    )
    return jsonify(payload), 200
