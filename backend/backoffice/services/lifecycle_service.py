# Overview: Service-layer operations for document stages; named transitions for purchases, adjustments and stock counts.

"""
Document stage machine shared by purchases and stock adjustments.

    DRAFT --check--> CHECKED --approve--> APPROVED --complete--> COMPLETED
      \\                |
       +----cancel-----+-----> CANCELLED

Physical inventory counts use a shorter table: check and cancel as above,
and commit moves a DRAFT or CHECKED count straight to COMPLETED.

- DRAFT and CHECKED documents can still be edited.
- Only DRAFT documents can be deleted.
- COMPLETED and CANCELLED are terminal.
- Procurement reports count CHECKED, APPROVED and COMPLETED documents.
"""

from __future__ import annotations

from backoffice.models import DocumentStage, EDITABLE_STAGES
from backoffice.services.errors import StageTransitionError


Transitions = dict[str, tuple[frozenset[DocumentStage], DocumentStage]]

# action -> (allowed source stages, target stage)
TRANSITIONS: Transitions = {
    "check": (frozenset({DocumentStage.DRAFT}), DocumentStage.CHECKED),
    "approve": (frozenset({DocumentStage.CHECKED}), DocumentStage.APPROVED),
    "complete": (frozenset({DocumentStage.APPROVED}), DocumentStage.COMPLETED),
    "cancel": (frozenset({DocumentStage.DRAFT, DocumentStage.CHECKED}), DocumentStage.CANCELLED),
}

COUNT_TRANSITIONS: Transitions = {
    "check": TRANSITIONS["check"],
    "commit": (EDITABLE_STAGES, DocumentStage.COMPLETED),
    "cancel": TRANSITIONS["cancel"],
}


def can_transition(current: DocumentStage, action: str, transitions: Transitions = TRANSITIONS) -> bool:
    """
    Check whether `action` may be applied to a document in stage `current`.

    Unknown actions are never allowed.
    """
    if action not in transitions:
        return False
    sources, _target = transitions[action]
    return current in sources


def available_actions(document, transitions: Transitions = TRANSITIONS) -> list[str]:
    """Actions the document's current stage allows, in table order."""
    return [action for action in transitions if can_transition(document.stage_enum, action, transitions)]


def next_stage(current: DocumentStage, action: str, transitions: Transitions = TRANSITIONS) -> DocumentStage:
    """
    Resolve the stage a document moves to when `action` is applied.

    Raises:
        StageTransitionError: unknown action, or action not allowed from `current`
    """
    if action not in transitions:
        raise StageTransitionError(
            f"Unknown action '{action}'. Must be one of: {', '.join(transitions)}"
        )
    if not can_transition(current, action, transitions):
        sources, _target = transitions[action]
        allowed = ", ".join(sorted(s.value for s in sources))
        raise StageTransitionError(
            f"Cannot {action} a document in stage {current.value}; requires {allowed}"
        )
    return transitions[action][1]


def transition(document, action: str, transitions: Transitions = TRANSITIONS) -> DocumentStage:
    """
    Move a document to its next stage (no commit).

    Returns the new stage.
    """
    target = next_stage(document.stage_enum, action, transitions)
    document.stage = target.value
    return target


def require_editable(document) -> None:
    if document.stage_enum not in EDITABLE_STAGES:
        raise StageTransitionError(
            f"Document {document.id} is {document.stage} and can no longer be edited"
        )


def require_deletable(document) -> None:
    if document.stage_enum is not DocumentStage.DRAFT:
        raise StageTransitionError(
            f"Document {document.id} is {document.stage}; only DRAFT documents can be deleted"
        )
