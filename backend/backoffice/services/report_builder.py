# Overview: Custom sales report builder; validated definitions over whitelisted columns.

"""
Custom report builder.

A client posts a JSON description of the report it wants:

    {
        "start_date": "2026-01-01",
        "end_date": "2026-01-31",
        "columns": ["receipt_no", "item_name", "quantity"],
        "conditions": [{"field": "store_id", "operator": "=", "value": 1}],
        "group_by": ["product"],
        "aggregations": ["total_revenue"],
        "report_title": "January by product"
    }

CustomReportDefinition.from_payload() checks every part against the allow-lists
below and raises FilterValidationError with all problems at once. Only
then is a query assembled, using SalesItemQuery so joins and voided-sale
exclusion behave exactly as in the fixed reports. Condition values are
always bound parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Mapping

from sqlalchemy import String, cast, func

from backoffice.models import ConditionOperator, Customer, Product, ProductCategory, Sale, SaleItem, User
from backoffice.services.presentation import row_to_dict
from backoffice.services.report_query import (
    Aggregate,
    SalesGrouping,
    SalesItemQuery,
    category_name_expression,
    period_expression,
)
from backoffice.time_utils import day_bounds
from backoffice.validation import (
    DateField,
    FieldError,
    FilterSet,
    FilterValidationError,
    StringField,
    first_of_this_month,
    last_of_this_month,
    parse_int,
)


DEFAULT_TITLE = "Custom Generated Report"
MAX_ROWS = 1000


@dataclass(frozen=True)
class ColumnOption:
    key: str
    label: str
    table: str
    expression: Any
    requires: tuple[str, ...] = ()


COLUMN_OPTIONS: dict[str, ColumnOption] = {
    option.key: option
    for option in (
        ColumnOption("id", "Sale ID", "sale", Sale.id),
        ColumnOption("transacted_at", "Date", "sale", Sale.transacted_at),
        ColumnOption("receipt_no", "Receipt No", "sale", Sale.receipt_no),
        ColumnOption("invoice_no", "Invoice No", "sale", Sale.invoice_no),
        ColumnOption("total_due_cents", "Total Due", "sale", Sale.total_due_cents),
        ColumnOption("discount_cents", "Discount", "sale", Sale.discount_cents),
        ColumnOption("total_paid_cents", "Total Paid", "sale", Sale.total_paid_cents),
        ColumnOption("user_id", "Cashier ID", "sale", Sale.user_id),
        ColumnOption("customer_id", "Customer ID", "sale", Sale.customer_id),
        ColumnOption("quantity", "Quantity", "sale_item", SaleItem.quantity),
        ColumnOption("price_cents", "Unit Price", "sale_item", SaleItem.price_cents),
        ColumnOption("item_name", "Item Name", "product", Product.name, ("product",)),
        ColumnOption("customer_first_name", "Customer First Name", "customer", Customer.first_name, ("customer",)),
        ColumnOption("customer_company_name", "Customer Company", "customer", Customer.company_name, ("customer",)),
        ColumnOption("user_name", "Cashier", "cashier", User.name, ("cashier",)),
    )
}

# Used when the request selects nothing at all
DEFAULT_COLUMNS = ("id", "transacted_at", "item_name", "quantity", "price_cents")


@dataclass(frozen=True)
class ConditionField:
    key: str
    label: str
    expression: Any
    requires: tuple[str, ...] = ()


CONDITION_FIELDS: dict[str, ConditionField] = {
    option.key: option
    for option in (
        ConditionField("customer_id", "Customer", Sale.customer_id),
        ConditionField("user_id", "Cashier", Sale.user_id),
        ConditionField("store_id", "Store", Sale.store_id),
        ConditionField("product_id", "Product", SaleItem.product_id),
        ConditionField("category_id", "Item Category", Product.category_id, ("product",)),
    )
}


class CustomGrouping(str, Enum):
    CASHIER = "cashier"
    CUSTOMER = "customer"
    ITEM_CATEGORY = "item_category"
    PRODUCT = "product"
    DATE = "date"


@dataclass(frozen=True)
class GroupOption:
    label: str
    requires: tuple[str, ...]
    # (key, header label, expression) for every projected column
    columns: Callable[[], list]
    group_by: Callable[[], list]


GROUP_OPTIONS: dict[CustomGrouping, GroupOption] = {
    CustomGrouping.CASHIER: GroupOption(
        label="Cashier",
        requires=("cashier",),
        columns=lambda: [("user_id", "Cashier ID", Sale.user_id), ("user_name", "Cashier", User.name)],
        group_by=lambda: [Sale.user_id, User.name],
    ),
    CustomGrouping.CUSTOMER: GroupOption(
        label="Customer",
        requires=("customer",),
        columns=lambda: [
            ("customer_id", "Customer ID", Sale.customer_id),
            ("customer_first_name", "Customer First Name", Customer.first_name),
            ("customer_company_name", "Customer Company", Customer.company_name),
        ],
        group_by=lambda: [Sale.customer_id, Customer.first_name, Customer.company_name],
    ),
    CustomGrouping.ITEM_CATEGORY: GroupOption(
        label="Item Category",
        requires=("category",),
        columns=lambda: [
            ("category_id", "Category ID", ProductCategory.id),
            ("category_name", "Item Category", category_name_expression()),
        ],
        group_by=lambda: [ProductCategory.id, ProductCategory.name],
    ),
    CustomGrouping.PRODUCT: GroupOption(
        label="Product/Service",
        requires=("product",),
        columns=lambda: [("product_id", "Product ID", Product.id), ("item_name", "Item Name", Product.name)],
        group_by=lambda: [Product.id, Product.name],
    ),
    CustomGrouping.DATE: GroupOption(
        label="Date",
        requires=(),
        columns=lambda: [("sale_date", "Date", period_expression(SalesGrouping.DAY))],
        group_by=lambda: ["sale_date"],
    ),
}

COUNT_RECORDS_KEY = "count_records"


# ---------------------------------------------------------------------------
# Definition
# ---------------------------------------------------------------------------

CUSTOM_FILTERS = FilterSet(
    DateField("start_date", default=first_of_this_month),
    DateField("end_date", default=last_of_this_month),
    StringField("report_title", max_length=255),
    date_ranges=[("start_date", "end_date")],
)


@dataclass(frozen=True)
class CustomCondition:
    field: str
    operator: ConditionOperator
    value: Any


@dataclass(frozen=True)
class CustomReportDefinition:
    start_date: date
    end_date: date
    columns: tuple[str, ...] = ()
    conditions: tuple[CustomCondition, ...] = ()
    group_by: tuple[CustomGrouping, ...] = ()
    aggregations: tuple[Aggregate, ...] = ()
    report_title: str = DEFAULT_TITLE

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomReportDefinition":
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise FilterValidationError({"payload": "payload must be a JSON object"})

        errors: dict[str, str] = {}
        try:
            values = CUSTOM_FILTERS.validate(payload)
        except FilterValidationError as exc:
            errors.update(exc.errors)
            values = {}

        columns = _choice_list(payload.get("columns"), "columns", list(COLUMN_OPTIONS), errors)
        group_by = _choice_list(payload.get("group_by"), "group_by", [g.value for g in CustomGrouping], errors)
        aggregations = _choice_list(payload.get("aggregations"), "aggregations", [a.value for a in Aggregate], errors)
        conditions = _parse_conditions(payload.get("conditions"), errors)

        if errors:
            raise FilterValidationError(errors)

        return cls(
            start_date=values["start_date"],
            end_date=values["end_date"],
            columns=tuple(columns),
            conditions=tuple(conditions),
            group_by=tuple(CustomGrouping(g) for g in group_by),
            aggregations=tuple(Aggregate(a) for a in aggregations),
            report_title=values.get("report_title") or DEFAULT_TITLE,
        )

    @property
    def is_grouped(self) -> bool:
        return bool(self.group_by or self.aggregations)


def _choice_list(raw: Any, name: str, allowed: list[str], errors: dict) -> list[str]:
    if raw is None or raw == "":
        return []
    if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
        errors[name] = f"{name} must be a list of strings"
        return []

    unknown = [v for v in raw if v not in allowed]
    if unknown:
        errors[name] = f"{name} contains unsupported values: {', '.join(unknown)}"
        return []

    seen: list[str] = []
    for value in raw:
        if value not in seen:
            seen.append(value)
    return seen


def _parse_condition_value(operator: ConditionOperator, raw: Any) -> Any:
    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if isinstance(raw, str):
            raw = [part for part in raw.split(",") if part.strip()]
        if not isinstance(raw, list) or not raw:
            raise FieldError("must be a non-empty list")
        return tuple(parse_int(v) for v in raw)

    if operator is ConditionOperator.CONTAINS:
        text = "" if raw is None else str(raw).strip()
        if not text:
            raise FieldError("is required")
        if len(text) > 64:
            raise FieldError("may not be longer than 64 characters")
        return text

    if raw is None or raw == "":
        raise FieldError("is required")
    return parse_int(raw)


def _parse_conditions(raw: Any, errors: dict) -> list[CustomCondition]:
    if raw is None or raw == "":
        return []
    if not isinstance(raw, list):
        errors["conditions"] = "conditions must be a list"
        return []

    parsed = []
    for index, item in enumerate(raw):
        key = f"conditions.{index}"
        if not isinstance(item, Mapping):
            errors[key] = f"{key} must be an object"
            continue

        field_name = item.get("field")
        if field_name not in CONDITION_FIELDS:
            errors[key] = f"{key}.field must be one of: {', '.join(CONDITION_FIELDS)}"
            continue

        try:
            operator = ConditionOperator(item.get("operator"))
        except ValueError:
            allowed = ", ".join(op.value for op in ConditionOperator)
            errors[key] = f"{key}.operator must be one of: {allowed}"
            continue

        try:
            value = _parse_condition_value(operator, item.get("value"))
        except FieldError as exc:
            errors[key] = f"{key}.value {exc}"
            continue

        parsed.append(CustomCondition(field=field_name, operator=operator, value=value))
    return parsed


def condition_clause(condition: CustomCondition):
    column = CONDITION_FIELDS[condition.field].expression
    op = condition.operator
    value = condition.value

    if op is ConditionOperator.EQUALS:
        return column == value
    if op is ConditionOperator.NOT_EQUALS:
        return column != value
    if op is ConditionOperator.GREATER_THAN:
        return column > value
    if op is ConditionOperator.LESS_THAN:
        return column < value
    if op is ConditionOperator.GREATER_OR_EQUAL:
        return column >= value
    if op is ConditionOperator.LESS_OR_EQUAL:
        return column <= value
    if op is ConditionOperator.CONTAINS:
        return cast(column, String).like(f"%{value}%")
    if op is ConditionOperator.IN:
        return column.in_(value)
    if op is ConditionOperator.NOT_IN:
        return column.not_in(value)
    raise ValueError(f"Unsupported operator: {op!r}")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def build_custom_query(definition: CustomReportDefinition) -> tuple[SalesItemQuery, list[dict]]:
    """Assemble the query for a validated definition. Returns (query, headers)."""
    start, end = day_bounds(definition.start_date, definition.end_date)
    q = SalesItemQuery(start=start, end=end)

    for condition in definition.conditions:
        q.where(condition_clause(condition), requires=CONDITION_FIELDS[condition.field].requires)

    headers: list[dict] = []
    selected: set[str] = set()

    def add_column(key: str, label: str, expression, requires=()):
        if key in selected:
            return False
        selected.add(key)
        headers.append({"key": key, "label": label})
        q.select(expression.label(key), requires=requires)
        return True

    columns = definition.columns
    if not columns and not definition.is_grouped:
        columns = DEFAULT_COLUMNS

    if not definition.is_grouped:
        for key in columns:
            option = COLUMN_OPTIONS[key]
            add_column(option.key, option.label, option.expression, option.requires)
        q.order_by(Sale.transacted_at.asc(), Sale.id.asc(), SaleItem.id.asc())
        return q, headers

    for grouping in definition.group_by:
        option = GROUP_OPTIONS[grouping]
        q.require(*option.requires)
        for key, label, expression in option.columns():
            add_column(key, label, expression)
        q.group_by(*option.group_by())
        q.order_by(*option.group_by())

    for key in columns:
        option = COLUMN_OPTIONS[key]
        if add_column(option.key, option.label, option.expression, option.requires):
            q.group_by(option.expression)
            q.order_by(option.expression)

    aggregations = definition.aggregations
    if aggregations:
        for aggregate in aggregations:
            headers.append({"key": aggregate.value, "label": aggregate.label})
            q.aggregate(aggregate)
    else:
        headers.append({"key": COUNT_RECORDS_KEY, "label": "Record Count"})
        q.select(func.count(SaleItem.id).label(COUNT_RECORDS_KEY))

    return q, headers


def run_custom_report(definition: CustomReportDefinition) -> dict:
    q, headers = build_custom_query(definition)
    rows = q.query().limit(MAX_ROWS + 1).all()
    truncated = len(rows) > MAX_ROWS
    rows = rows[:MAX_ROWS]

    return {
        "report_title": definition.report_title,
        "start_date_formatted": definition.start_date.strftime("%B %d, %Y"),
        "end_date_formatted": definition.end_date.strftime("%B %d, %Y"),
        "headers": headers,
        "results": [row_to_dict(row) for row in rows],
        "row_count": len(rows),
        "truncated": truncated,
    }


def available_options() -> dict:
    tables: dict[str, list[dict]] = {}
    for option in COLUMN_OPTIONS.values():
        tables.setdefault(option.table, []).append({"key": option.key, "label": option.label})

    return {
        "columns": tables,
        "condition_fields": [{"key": f.key, "label": f.label} for f in CONDITION_FIELDS.values()],
        "operators": [{"value": op.value, "label": op.label} for op in ConditionOperator],
        "group_by": [{"value": g.value, "label": GROUP_OPTIONS[g].label} for g in CustomGrouping],
        "aggregations": [{"value": a.value, "label": a.label} for a in Aggregate],
    }
