"""Render audit rows into the opportunity history feed.

Two kinds of rows exist. Tagged rows carry a category in ``field_name`` and
are described from that tag. Legacy rows (``field_name`` NULL) predate the
tagging convention and are described by inspecting the keys of their JSON
payload. Both paths stay explicit so older rows keep rendering exactly as
they did when they were written.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.audit_log import AuditLog
from app.models.user import User
from app.schemas.audit import (
    FieldGroupPayload,
    HistoryEntry,
    StatusChangePayload,
    UnqualifiedPayload,
)
from app.services.audit import (
    ADDRESS_FIELDS,
    CLIENT_DETAIL_FIELDS,
    DECLINED_REASON_FIELDS,
    FINANCIAL_DETAIL_FIELDS,
    ICR_LVR_FIELDS,
    LOAN_DETAIL_FIELDS,
    LOAN_REFERENCE_FIELDS,
    OPPORTUNITIES_TABLE,
    PAYMENT_INFO_FIELDS,
    AuditAction,
    AuditCategory,
)
from app.services.opportunity_status import format_status

SYSTEM_USER_NAME = "System"
LEGACY_SUMMARY_LIMIT = 3

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_FIXED_ACTION_DESCRIPTIONS = {
    AuditAction.CREATE.value: "Opportunity Created",
    AuditAction.DELETE.value: "Opportunity Deleted",
    AuditAction.FINALISE_COMPLETE.value: "Deal Finalisation Info completed.",
}

_CANNED_TAG_DESCRIPTIONS = {
    AuditCategory.DRAFT_UPDATE.value: "Draft updated",
    AuditCategory.EXTERNAL_REF.value: "External Ref updated",
    AuditCategory.TEAM_MEMBER.value: "Team Member changed",
    AuditCategory.DELETED_AT.value: "Opportunity Deleted",
    AuditCategory.CLIENT_DETAILS.value: "Client Details updated",
    AuditCategory.LOAN_DETAILS.value: "Loan Details updated",
    AuditCategory.FINANCIAL_DETAILS.value: "Financial Details updated",
    AuditCategory.ICR_LVR.value: "ICR/LVR recalculated",
    AuditCategory.PAYMENT_INFO.value: "Payment Info updated",
    AuditCategory.LOAN_REFERENCE.value: "Loan Reference updated",
    AuditCategory.REASON.value: "Reason updated",
    AuditCategory.NOTES.value: "Notes updated",
    AuditCategory.ADDRESS.value: "Address updated",
}


def format_field_name(field: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in field.split("_"))


def _to_display_tz(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.display_timezone))


def format_date_short(value: Any) -> str:
    """``2026-03-05`` -> ``05 Mar 2026``; unparseable input is returned as-is."""
    parsed: date | None = None
    if isinstance(value, datetime):
        parsed = _to_display_tz(value).date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        try:
            if len(value) == 10:
                parsed = date.fromisoformat(value)
            else:
                parsed = _to_display_tz(datetime.fromisoformat(value.replace("Z", "+00:00"))).date()
        except ValueError:
            return value
    if parsed is None:
        return str(value)
    return f"{parsed.day:02d} {_MONTHS[parsed.month - 1]} {parsed.year}"


def format_time(value: datetime) -> str:
    return _to_display_tz(value).strftime("%I:%M %p").upper()


def _parse_payload(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def _status_phrase(data: Mapping[str, Any]) -> str:
    try:
        payload = StatusChangePayload.model_validate(dict(data))
    except ValidationError:
        return f"Status changed to {format_status(str(data.get('status')), for_history=True)}"
    label = format_status(payload.status, for_history=True)
    reason = payload.reason()
    if reason:
        return f"Status changed to {label}: {reason}"
    return f"Status changed to {label}"


def _unqualified_phrase(data: Mapping[str, Any]) -> str:
    try:
        payload = UnqualifiedPayload.model_validate(dict(data))
    except ValidationError:
        return "Unqualified Status updated"
    if payload.flagged:
        reason = payload.reason_text()
        return f"Marked as Unqualified: {reason}" if reason else "Marked as Unqualified"
    return "Removed Unqualified Status"


def _dated_phrase(label: str, value: Any) -> str:
    if value:
        return f"{label} set to {format_date_short(value)}"
    return f"{label} cleared"


def _quoted_phrase(label: str, value: Any) -> str:
    if value:
        return f'{label} set to "{value}"'
    return f"{label} cleared"


def _describe_tagged(tag: str, payload: Any) -> str:
    data = payload if isinstance(payload, dict) else None

    if tag == AuditCategory.STATUS_CHANGE.value:
        return _status_phrase(data) if data and data.get("status") else "Status changed"
    if tag == AuditCategory.UNQUALIFIED_STATUS.value:
        return _unqualified_phrase(data) if data is not None else "Unqualified Status updated"
    if tag == AuditCategory.TARGET_SETTLEMENT.value:
        if data and data.get("target_settlement_date"):
            return _dated_phrase("Target Settlement", data["target_settlement_date"])
        return "Target Settlement Date updated"
    if tag == AuditCategory.DATE_SETTLED.value:
        if data and data.get("date_settled"):
            return _dated_phrase("Date Settled", data["date_settled"])
        return "Date Settled updated"
    if tag == AuditCategory.LENDER.value:
        if data and data.get("lender"):
            return _quoted_phrase("Lender", data["lender"])
        return "Lender updated"
    if tag in _CANNED_TAG_DESCRIPTIONS:
        return _CANNED_TAG_DESCRIPTIONS[tag]
    return f"{format_field_name(tag)} updated"


def _legacy_changes(payload: FieldGroupPayload) -> list[str]:
    fields = payload.fields
    changes: list[str] = []

    if "external_ref" in fields:
        changes.append(_quoted_phrase("External Ref", fields["external_ref"]))
    if "created_by" in fields:
        changes.append("Team Member changed")
    if "target_settlement_date" in fields:
        changes.append(
            _dated_phrase("Target Settlement", fields["target_settlement_date"])
            if fields["target_settlement_date"]
            else "Target Settlement Date cleared"
        )
    if "date_settled" in fields:
        changes.append(_dated_phrase("Date Settled", fields["date_settled"]))
    if "lender" in fields:
        changes.append(_quoted_phrase("Lender", fields["lender"]))

    has_client_changes = payload.has_any(CLIENT_DETAIL_FIELDS)
    if has_client_changes:
        changes.append("Client Details updated")
    if payload.has_any(LOAN_DETAIL_FIELDS):
        changes.append("Loan Details updated")
    if payload.has_any(FINANCIAL_DETAIL_FIELDS):
        changes.append("Financial Details updated")
    if payload.has_any(ICR_LVR_FIELDS):
        changes.append("ICR/LVR recalculated")
    if payload.has_any(PAYMENT_INFO_FIELDS):
        changes.append("Payment Info updated")
    if payload.has_any(LOAN_REFERENCE_FIELDS):
        changes.append("Loan Reference updated")
    if payload.has_any(DECLINED_REASON_FIELDS):
        changes.append("Declined Reason added")
    if "withdrawn_reason" in fields:
        changes.append("Withdrawn Reason added")
    if payload.has_any(("reason_declined", "disqualify_reason")):
        changes.append("Reason updated")
    if "notes" in fields:
        changes.append("Notes updated")
    # Client address edits already read as client details.
    if payload.has_any(ADDRESS_FIELDS) and not has_client_changes:
        changes.append("Address updated")
    return changes


def _describe_legacy(data: dict[str, Any]) -> str:
    if data.get("status"):
        return _status_phrase(data)
    if "is_unqualified" in data:
        return _unqualified_phrase(data)

    changes = _legacy_changes(FieldGroupPayload.from_mapping(data))
    if changes:
        if len(changes) <= LEGACY_SUMMARY_LIMIT:
            return ", ".join(changes)
        shown = changes[: LEGACY_SUMMARY_LIMIT - 1]
        return f"{', '.join(shown)} (+{len(changes) - len(shown)} more)"

    keys = list(data)
    if not keys:
        return "Opportunity Updated"
    if len(keys) == 1:
        return f"{format_field_name(keys[0])} updated"
    return f"{len(keys)} fields updated"


def _entry_value(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def describe(entry: Any) -> str:
    """One-line description of an audit row. Never raises on bad payloads."""
    action = str(_entry_value(entry, "action") or "")
    if action in _FIXED_ACTION_DESCRIPTIONS:
        return _FIXED_ACTION_DESCRIPTIONS[action]
    if action != AuditAction.UPDATE.value:
        return action[:1].upper() + action[1:]

    field_name = _entry_value(entry, "field_name")
    payload = _parse_payload(_entry_value(entry, "new_value"))
    if field_name:
        return _describe_tagged(str(field_name), payload)
    if isinstance(payload, dict):
        return _describe_legacy(payload)
    return "Opportunity Updated"


def _sort_key(entry: AuditLog) -> datetime:
    created_at = entry.created_at or datetime.min
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at


async def _load_user_names(db: AsyncSession, user_ids: Iterable[Any]) -> dict[str, str]:
    ids = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {str(user.id): user.display_name for user in result.scalars().all()}


async def get_history(
    db: AsyncSession,
    record_id: Any,
    *,
    table_name: str = OPPORTUNITIES_TABLE,
) -> list[HistoryEntry]:
    stmt = (
        select(AuditLog)
        .where(AuditLog.record_id == str(record_id), AuditLog.table_name == table_name)
        .order_by(AuditLog.created_at.desc())
    )
    rows = sorted((await db.execute(stmt)).scalars().all(), key=_sort_key, reverse=True)

    user_ids = {row.user_id for row in rows if row.user_id is not None}
    names = await _load_user_names(db, user_ids)

    history: list[HistoryEntry] = []
    for row in rows:
        created_at = _sort_key(row)
        user_name = names.get(str(row.user_id)) if row.user_id is not None else None
        history.append(
            HistoryEntry(
                id=row.id,
                date=created_at,
                time=format_time(created_at),
                action=row.action,
                field_name=row.field_name,
                old_value=row.old_value,
                new_value=row.new_value,
                description=describe(row),
                user_name=user_name or SYSTEM_USER_NAME,
                ip_address=row.ip_address or "-",
            )
        )
    return history
