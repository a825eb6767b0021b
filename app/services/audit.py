from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.audit_log import AuditLog

audit_logger = get_audit_logger()

OPPORTUNITIES_TABLE = "opportunities"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FINALISE_COMPLETE = "finalise_complete"


class AuditCategory(str, Enum):
    STATUS_CHANGE = "status_change"
    UNQUALIFIED_STATUS = "unqualified_status"
    EXTERNAL_REF = "external_ref"
    TEAM_MEMBER = "team_member"
    TARGET_SETTLEMENT = "target_settlement"
    DATE_SETTLED = "date_settled"
    LENDER = "lender"
    CLIENT_DETAILS = "client_details"
    LOAN_DETAILS = "loan_details"
    FINANCIAL_DETAILS = "financial_details"
    ICR_LVR = "icr_lvr"
    PAYMENT_INFO = "payment_info"
    LOAN_REFERENCE = "loan_reference"
    REASON = "reason"
    NOTES = "notes"
    ADDRESS = "address"
    DRAFT_UPDATE = "draft_update"
    DEAL_FINALISATION = "deal_finalisation"
    DELETED_AT = "deleted_at"
    OPPORTUNITY = "opportunity"


CLIENT_DETAIL_FIELDS = ("entity_type", "industry", "time_in_business", "abn", "client_address", "brief_overview")
LOAN_DETAIL_FIELDS = ("loan_amount", "property_value", "loan_type", "loan_purpose", "asset_type", "asset_address")
FINANCIAL_DETAIL_FIELDS = (
    "net_profit",
    "ammortisation",
    "deprecition",
    "existing_interest_costs",
    "rental_expense",
    "proposed_rental_income",
    "existing_liabilities",
    "additional_property",
    "smsf_structure",
    "ato_liabilities",
    "credit_file_issues",
    "rental_income",
)
ICR_LVR_FIELDS = ("icr", "lvr")
PAYMENT_INFO_FIELDS = ("payment_received_date", "payment_amount")
LOAN_REFERENCE_FIELDS = ("loan_acc_ref_no", "flex_id")
DECLINED_REASON_FIELDS = ("declined_reason", "completed_declined_reason")
REASON_FIELDS = (
    "declined_reason",
    "completed_declined_reason",
    "withdrawn_reason",
    "reason_declined",
    "disqualify_reason",
)
ADDRESS_FIELDS = ("address", "street_address", "city", "state", "postcode")

# Priority order for tagging a live mutation. The first matching category wins.
# audit_history keeps its own table for untagged rows; the two are not derived
# from each other because legacy rows must keep rendering the way they always did.
LIVE_CATEGORY_RULES: tuple[tuple[AuditCategory, tuple[str, ...]], ...] = (
    (AuditCategory.STATUS_CHANGE, ("status",)),
    (AuditCategory.UNQUALIFIED_STATUS, ("is_unqualified",)),
    (AuditCategory.EXTERNAL_REF, ("external_ref",)),
    (AuditCategory.TEAM_MEMBER, ("created_by",)),
    (AuditCategory.TARGET_SETTLEMENT, ("target_settlement_date",)),
    (AuditCategory.DATE_SETTLED, ("date_settled",)),
    (AuditCategory.LENDER, ("lender",)),
    (AuditCategory.CLIENT_DETAILS, CLIENT_DETAIL_FIELDS),
    (AuditCategory.LOAN_DETAILS, LOAN_DETAIL_FIELDS),
    (AuditCategory.FINANCIAL_DETAILS, FINANCIAL_DETAIL_FIELDS),
    (AuditCategory.ICR_LVR, ICR_LVR_FIELDS),
    (AuditCategory.PAYMENT_INFO, PAYMENT_INFO_FIELDS),
    (AuditCategory.LOAN_REFERENCE, LOAN_REFERENCE_FIELDS),
    (AuditCategory.REASON, REASON_FIELDS),
    (AuditCategory.NOTES, ("notes",)),
    (AuditCategory.ADDRESS, ADDRESS_FIELDS),
)


@dataclass(frozen=True, slots=True)
class RequestMeta:
    ip_address: str | None = None
    user_agent: str | None = None


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            UUID: lambda v: str(v),
        },
    )


def classify_changed_fields(
    changed_fields: Mapping[str, Any],
    *,
    fallback: AuditCategory = AuditCategory.OPPORTUNITY,
) -> str:
    """Pick the single category tag describing a mutation."""
    keys = set(changed_fields)
    for category, fields in LIVE_CATEGORY_RULES:
        if keys.intersection(fields):
            return category.value
    return fallback.value


def _default_tag(action: str, changed_fields: Mapping[str, Any]) -> str:
    if action == AuditAction.CREATE.value:
        return AuditCategory.OPPORTUNITY.value
    if action == AuditAction.DELETE.value:
        return AuditCategory.DELETED_AT.value
    if action == AuditAction.FINALISE_COMPLETE.value:
        return AuditCategory.DEAL_FINALISATION.value
    return classify_changed_fields(changed_fields)


def _dump(value: Mapping[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(serialize_for_audit(dict(value)))


def _enum_value(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


async def record_mutation(
    db: AsyncSession,
    *,
    table_name: str,
    record_id: Any,
    action: AuditAction | str,
    changed_fields: Mapping[str, Any],
    actor_id: Any = None,
    request_meta: RequestMeta | None = None,
    field_name: AuditCategory | str | None = None,
    previous_values: Mapping[str, Any] | None = None,
) -> AuditLog | None:
    """Append one audit row for a mutation that has already been committed.

    Only the changed fields are stored. A failed append is logged on the audit
    stream and dropped: the caller's business write stays committed and the
    caller still reports success.
    """
    action_value = _enum_value(action)
    meta = request_meta or RequestMeta()
    try:
        tag = _enum_value(field_name) if field_name is not None else _default_tag(action_value, changed_fields)
        entry = AuditLog(
            user_id=actor_id,
            table_name=table_name,
            record_id=str(record_id),
            action=action_value,
            field_name=tag,
            old_value=_dump(previous_values),
            new_value=_dump(changed_fields),
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        db.add(entry)
        await db.commit()
    except Exception:
        await db.rollback()
        audit_logger.warning(
            "Audit append failed for %s %s",
            table_name,
            record_id,
            exc_info=True,
            extra={"table_name": table_name, "record_id": str(record_id), "action": action_value},
        )
        return None
    audit_logger.info(
        "Audit entry recorded",
        extra={
            "table_name": table_name,
            "record_id": str(record_id),
            "action": action_value,
            "field_name": tag,
        },
    )
    return entry
