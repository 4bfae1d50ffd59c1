"""
Input validation for report filters and document payloads.

Report endpoints declare a FilterSet of typed fields. validate() checks every
field, collects all problems into a {field: message} dict and raises
FilterValidationError before any report query runs. Unknown parameters are
ignored; omitted or blank fields fall back to their defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from backoffice.extensions import db
from backoffice.time_utils import (
    parse_iso_date,
    start_of_month,
    end_of_month,
    subtract_months,
    to_iso_date,
    today,
)


class ValidationError(ValueError):
    """400-level input problem."""


class FilterValidationError(ValidationError):
    """One or more report filters are invalid; errors maps field -> message."""

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))


class FieldError(ValueError):
    """Single-field problem, collected by FilterSet.validate()."""


# Largest value a signed 64-bit database integer column holds
MAX_INT = 2**63 - 1
MAX_PAGE = 100_000

# Per-line caps keep document totals well inside MAX_INT
MAX_LINE_QUANTITY = 1_000_000
MAX_PRICE_CENTS = 10_000_000_000

# Accepted calendar window for date filters and the widest range one report may span
MIN_DATE = date(1900, 1, 1)
MAX_DATE = date(2999, 12, 31)
MAX_RANGE_DAYS = 3660


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and raw.strip() == "")


def _in_range(value: int) -> int:
    if abs(value) > MAX_INT:
        raise FieldError("is out of range")
    return value


def parse_int(raw: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(raw, bool):
        raise FieldError("must be an integer")
    if isinstance(raw, int):
        return _in_range(raw)
    if isinstance(raw, str):
        stripped = raw.strip()
        if 'e' in stripped.lower() or '.' in stripped:
            raise FieldError("must be a plain integer")
        try:
            value = int(stripped)
        except ValueError:
            raise FieldError("must be an integer")
        return _in_range(value)
    raise FieldError("must be an integer")



# ---------------------------------------------------------------------------
# Default factories
# ---------------------------------------------------------------------------

def first_of_this_month() -> date:
    return start_of_month(today())


def last_of_this_month() -> date:
    return end_of_month(today())


def days_ago(days: int) -> Callable[[], date]:
    def _default() -> date:
        return today() - timedelta(days=days)
    return _default


def months_ago(months: int) -> Callable[[], date]:
    def _default() -> date:
        return subtract_months(today(), months)
    return _default


# ---------------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateField:
    name: str
    default: Callable[[], date | None] | None = None

    def parse(self, raw: Any) -> date | None:
        if _blank(raw):
            return self.default() if self.default else None
        try:
            value = parse_iso_date(str(raw))
        except ValueError:
            raise FieldError("must be a date in YYYY-MM-DD format")
        if not MIN_DATE <= value <= MAX_DATE:
            raise FieldError(f"must be between {MIN_DATE.isoformat()} and {MAX_DATE.isoformat()}")
        return value


@dataclass(frozen=True)
class ReferenceField:
    """Optional id that must reference an existing row of `model`."""
    name: str
    model: Any
    label: str | None = None

    def parse(self, raw: Any) -> int | None:
        if _blank(raw):
            return None
        value = parse_int(raw)
        if db.session.get(self.model, value) is None:
            raise FieldError(f"selected {self.label or self.name} does not exist")
        return value


@dataclass(frozen=True)
class ChoiceField:
    """Closed enumeration; accepts Enum classes or plain string tuples."""
    name: str
    choices: Sequence[str] | type[Enum]
    default: str | None = None

    @property
    def allowed(self) -> list[str]:
        if isinstance(self.choices, type) and issubclass(self.choices, Enum):
            return [member.value for member in self.choices]
        return list(self.choices)

    def parse(self, raw: Any) -> str | None:
        if _blank(raw):
            return self.default
        value = str(raw).strip()
        if value not in self.allowed:
            raise FieldError(f"must be one of: {', '.join(self.allowed)}")
        return value


@dataclass(frozen=True)
class IntField:
    name: str
    default: int | None = None
    min_value: int | None = None
    max_value: int | None = None

    def parse(self, raw: Any) -> int | None:
        if _blank(raw):
            return self.default
        value = parse_int(raw)
        if self.min_value is not None and value < self.min_value:
            raise FieldError(f"must be at least {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise FieldError(f"may not be greater than {self.max_value}")
        return value


@dataclass(frozen=True)
class StringField:
    name: str
    max_length: int = 64

    def parse(self, raw: Any) -> str | None:
        if _blank(raw):
            return None
        value = str(raw).strip()
        if len(value) > self.max_length:
            raise FieldError(f"may not be longer than {self.max_length} characters")
        return value


class FilterSet:
    """
    Declarative whitelist of report filters.

    date_ranges holds (start_field, end_field) pairs that must satisfy
    end >= start after defaults are applied, and span at most
    MAX_RANGE_DAYS.
    """

    def __init__(self, *fields, date_ranges: Sequence[tuple[str, str]] = ()):
        self.fields = fields
        self.date_ranges = tuple(date_ranges)

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def validate(self, args: Mapping[str, Any] | None) -> dict:
        args = args or {}
        values: dict[str, Any] = {}
        errors: dict[str, str] = {}

        for f in self.fields:
            try:
                values[f.name] = f.parse(args.get(f.name))
            except FieldError as exc:
                errors[f.name] = f"{f.name} {exc}"

        for start_name, end_name in self.date_ranges:
            if start_name in errors or end_name in errors:
                continue
            start, end = values.get(start_name), values.get(end_name)
            if not (start and end):
                continue
            if end < start:
                errors[end_name] = f"{end_name} must be a date after or equal to {start_name}"
            elif (end - start).days > MAX_RANGE_DAYS:
                errors[end_name] = f"{end_name} may be at most {MAX_RANGE_DAYS} days after {start_name}"

        if errors:
            raise FilterValidationError(errors)
        return values


def serialize_filters(values: Mapping[str, Any]) -> dict:
    """Normalized filters echoed back to the client (dates as ISO strings)."""
    out = {}
    for key, value in values.items():
        if isinstance(value, date):
            out[key] = to_iso_date(value)
        elif isinstance(value, Enum):
            out[key] = value.value
        else:
            out[key] = value
    return out


# ---------------------------------------------------------------------------
# Document payloads
# ---------------------------------------------------------------------------

def require_fields(payload: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if _blank(payload.get(name))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def validate_line_items(
    items: Any,
    *,
    quantity_key: str = "quantity",
    allow_negative: bool = False,
) -> list[dict]:
    """
    Validate document lines: a non-empty list of {product_id, quantity, price_cents}.
    Quantities must be positive unless allow_negative (then non-zero).
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        try:
            product_id = parse_int(item.get("product_id"))
            quantity = parse_int(item.get(quantity_key))
            price_cents = parse_int(item.get("price_cents", 0))
        except FieldError as exc:
            raise ValidationError(f"items[{index}]: {exc}")

        if allow_negative:
            if quantity == 0:
                raise ValidationError(f"items[{index}].{quantity_key} must be non-zero")
        elif quantity <= 0:
            raise ValidationError(f"items[{index}].{quantity_key} must be > 0")
        if abs(quantity) > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{index}].{quantity_key} may not exceed {MAX_LINE_QUANTITY}")
        if price_cents < 0:
            raise ValidationError(f"items[{index}].price_cents must be >= 0")
        if price_cents > MAX_PRICE_CENTS:
            raise ValidationError(f"items[{index}].price_cents may not exceed {MAX_PRICE_CENTS}")

        cleaned.append({"product_id": product_id, quantity_key: quantity, "price_cents": price_cents})
    return cleaned
