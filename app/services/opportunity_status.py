"""Opportunity status ordering used for progress display and filtering.

Transitions are not validated here: any role allowed to edit an
opportunity may set any status value. Migrated rows can hold values outside
the canonical set, so every helper treats an unknown status as "early stage"
instead of raising.
"""

from __future__ import annotations

from enum import Enum


class OpportunityStatus(str, Enum):
    DRAFT = "draft"
    OPPORTUNITY = "opportunity"
    APPLICATION_CREATED = "application_created"
    APPLICATION_SUBMITTED = "application_submitted"
    CONDITIONALLY_APPROVED = "conditionally_approved"
    APPROVED = "approved"
    DECLINED = "declined"
    SETTLED = "settled"
    WITHDRAWN = "withdrawn"


# Happy path rendered as the progress bar.
PROGRESS_ORDER: tuple[str, ...] = (
    OpportunityStatus.DRAFT.value,
    OpportunityStatus.OPPORTUNITY.value,
    OpportunityStatus.APPLICATION_CREATED.value,
    OpportunityStatus.APPLICATION_SUBMITTED.value,
    OpportunityStatus.CONDITIONALLY_APPROVED.value,
    OpportunityStatus.APPROVED.value,
    OpportunityStatus.SETTLED.value,
)

# Full display order, side branches included, used for checkmarks.
DISPLAY_ORDER: tuple[str, ...] = tuple(status.value for status in OpportunityStatus)

TERMINAL_SIDE_BRANCHES = frozenset({OpportunityStatus.DECLINED.value, OpportunityStatus.WITHDRAWN.value})

APPLICATION_STAGE_STATUSES = frozenset(
    {
        OpportunityStatus.APPLICATION_CREATED.value,
        OpportunityStatus.APPLICATION_SUBMITTED.value,
        OpportunityStatus.CONDITIONALLY_APPROVED.value,
        OpportunityStatus.APPROVED.value,
        OpportunityStatus.DECLINED.value,
        OpportunityStatus.SETTLED.value,
        OpportunityStatus.WITHDRAWN.value,
    }
)

UNKNOWN_STATUS_PROGRESS = 20.0

_STATUS_LABELS = {
    OpportunityStatus.DRAFT.value: "Draft",
    OpportunityStatus.OPPORTUNITY.value: "Opportunity",
    OpportunityStatus.APPLICATION_CREATED.value: "Application Created",
    OpportunityStatus.APPLICATION_SUBMITTED.value: "Application Submitted",
    OpportunityStatus.CONDITIONALLY_APPROVED.value: "Conditionally Approved",
    OpportunityStatus.APPROVED.value: "Approved",
    OpportunityStatus.DECLINED.value: "Declined",
    OpportunityStatus.SETTLED.value: "Settled",
    OpportunityStatus.WITHDRAWN.value: "Withdrawn",
}

# The history feed calls the opportunity stage a "Lead".
_HISTORY_LABEL_OVERRIDES = {OpportunityStatus.OPPORTUNITY.value: "Lead"}

# Migrated rows from before declined was split from its completed variant.
_LEGACY_ALIASES = {"completed_declined": OpportunityStatus.DECLINED.value}


def normalize_status(status: str | OpportunityStatus | None) -> str | None:
    """Canonical spelling of a stored status; legacy aliases map to their current value."""
    if status is None:
        return None
    if isinstance(status, OpportunityStatus):
        return status.value
    value = str(status).strip().lower()
    return _LEGACY_ALIASES.get(value, value)


def is_known_status(status: str | None) -> bool:
    return normalize_status(status) in _STATUS_LABELS


def progress_percentage(status: str | OpportunityStatus | None) -> float:
    value = normalize_status(status)
    if value in TERMINAL_SIDE_BRANCHES:
        return 100.0
    if value not in PROGRESS_ORDER:
        return UNKNOWN_STATUS_PROGRESS
    return (PROGRESS_ORDER.index(value) + 1) / len(PROGRESS_ORDER) * 100


def is_at_or_past(status: str | OpportunityStatus | None, checkpoint: str | OpportunityStatus) -> bool:
    current = normalize_status(status)
    target = normalize_status(checkpoint)
    if current not in DISPLAY_ORDER or target not in DISPLAY_ORDER:
        return False
    return DISPLAY_ORDER.index(current) >= DISPLAY_ORDER.index(target)


def has_reached_application_stage(status: str | OpportunityStatus | None) -> bool:
    return normalize_status(status) in APPLICATION_STAGE_STATUSES


def format_status(status: str | OpportunityStatus | None, *, for_history: bool = False) -> str:
    value = normalize_status(status)
    if not value:
        return "-"
    if for_history and value in _HISTORY_LABEL_OVERRIDES:
        return _HISTORY_LABEL_OVERRIDES[value]
    return _STATUS_LABELS.get(value, str(status))
