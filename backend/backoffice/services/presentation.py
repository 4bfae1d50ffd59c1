# Overview: Shared helpers that turn raw query results into report payloads.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from backoffice.time_utils import to_iso_date, to_utc_z


EMPTY_MESSAGE = "No records match the selected filters."


def percentage_of(value, total) -> float:
    """(value / total) * 100 rounded to 2 places; 0 when total is 0."""
    if not total:
        return 0
    return round(float(value) / float(total) * 100.0, 2)


def as_int(value) -> int:
    """Integer view of an aggregate that may come back as None, Decimal or float."""
    if value is None:
        return 0
    return int(round(float(value)))


def json_value(value):
    """Make a single query cell JSON friendly."""
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return to_iso_date(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row) -> dict:
    return {key: json_value(value) for key, value in row._mapping.items()}


def paginate(query, *, page: int, per_page: int, serialize) -> dict:
    """
    Offset pagination with the same metadata shape as the product listing.
    `serialize` maps each result row to a dict.
    """
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def with_empty_state(report: dict, rows_key: str) -> dict:
    """Zero rows is a normal outcome; attach the empty-state message for the UI."""
    rows = report.get(rows_key)
    if isinstance(rows, dict):
        rows = rows.get("items")
    report["empty_message"] = EMPTY_MESSAGE if not rows else None
    return report


def page_payload(report, filters: dict, lookups: dict | None = None) -> dict:
    return {
        "report": report,
        "filters": filters,
        "lookups": lookups or {},
    }
