from __future__ import annotations

from enum import Enum


class DocumentStage(str, Enum):
    """
    Workflow stage shared by purchases and stock adjustments.

    Stored by name in a String column. Transitions live in
    services/lifecycle_service.py.
    """
    DRAFT = "DRAFT"
    CHECKED = "CHECKED"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def label(self) -> str:
        return self.value.title()


# Header and lines may still be edited
EDITABLE_STAGES = frozenset({DocumentStage.DRAFT, DocumentStage.CHECKED})

# Counted by procurement reports (cancelled and unchecked drafts are not)
COMMITTED_STAGES = frozenset({
    DocumentStage.CHECKED,
    DocumentStage.APPROVED,
    DocumentStage.COMPLETED,
})

TERMINAL_STAGES = frozenset({DocumentStage.COMPLETED, DocumentStage.CANCELLED})


class TransactionType(str, Enum):
    """Kinds of rows written to the product transaction log."""
    RECEIVE = "RECEIVE"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"


class ConditionOperator(str, Enum):
    """Operators accepted by custom report conditions."""
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_OR_EQUAL = ">="
    LESS_OR_EQUAL = "<="
    CONTAINS = "like"
    IN = "in"
    NOT_IN = "not_in"

    @property
    def label(self) -> str:
        return _OPERATOR_LABELS[self]


_OPERATOR_LABELS = {
    ConditionOperator.EQUALS: "Equals",
    ConditionOperator.NOT_EQUALS: "Does Not Equal",
    ConditionOperator.GREATER_THAN: "Is Greater Than",
    ConditionOperator.LESS_THAN: "Is Less Than",
    ConditionOperator.GREATER_OR_EQUAL: "Is Greater Than Or Equal",
    ConditionOperator.LESS_OR_EQUAL: "Is Less Than Or Equal",
    ConditionOperator.CONTAINS: "Contains",
    ConditionOperator.IN: "Is One Of",
    ConditionOperator.NOT_IN: "Is Not One Of",
}
