from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.opportunity import Opportunity, OpportunityDetails
from app.models.user import User
from app.schemas.opportunity import OpportunityDTO
from app.services.audit import (
    OPPORTUNITIES_TABLE,
    AuditAction,
    AuditCategory,
    RequestMeta,
    classify_changed_fields,
    record_mutation,
)
from app.services.opportunity_status import (
    OpportunityStatus,
    format_status,
    normalize_status,
    progress_percentage,
)

logger = logging.getLogger(__name__)


@dataclass
class OpportunityError(ValueError):
    code: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


OPPORTUNITY_FIELDS = (
    "entity_type",
    "industry",
    "time_in_business",
    "abn",
    "loan_amount",
    "property_value",
    "loan_type",
    "loan_purpose",
    "asset_type",
    "asset_address",
    "lender",
    "lvr",
    "icr",
    "external_ref",
    "target_settlement_date",
    "date_settled",
    "status",
    "notes",
    "declined_reason",
    "completed_declined_reason",
    "withdrawn_reason",
    "created_by",
)

DETAIL_FIELDS = (
    "address",
    "street_address",
    "city",
    "state",
    "postcode",
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
    "term1",
    "term2",
    "term3",
    "term4",
    "reason_declined",
    "disqualify_reason",
    "client_address",
    "time_in_business",
    "brief_overview",
    "outcome_level",
    "additional_notes",
    "rental_income",
    "loan_acc_ref_no",
    "flex_id",
    "payment_received_date",
    "payment_amount",
    "is_unqualified",
    "unqualified_date",
    "unqualified_reason",
    "deal_finalisation_status",
)

REFERRER_DRAFT_OPPORTUNITY_FIELDS = (
    "entity_type",
    "industry",
    "time_in_business",
    "abn",
    "loan_amount",
    "property_value",
    "loan_type",
    "loan_purpose",
    "asset_type",
    "asset_address",
    "lender",
    "lvr",
    "icr",
    "status",
    "created_by",
)

REFERRER_DRAFT_DETAIL_FIELDS = (
    "address",
    "street_address",
    "city",
    "state",
    "postcode",
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
    "term1",
    "term2",
    "term3",
    "term4",
    "client_address",
    "time_in_business",
    "brief_overview",
    "outcome_level",
    "additional_notes",
    "rental_income",
)

YES_NO_FIELDS = frozenset(
    {
        "existing_liabilities",
        "additional_property",
        "smsf_structure",
        "ato_liabilities",
        "credit_file_issues",
        "is_unqualified",
    }
)

CREATE_STATUSES = frozenset({OpportunityStatus.DRAFT.value, OpportunityStatus.OPPORTUNITY.value})

# Reasons that explain a terminal status; a status row carries the one in force.
STATUS_REASON_FIELDS = {
    OpportunityStatus.DECLINED.value: ("declined_reason", "completed_declined_reason"),
    OpportunityStatus.WITHDRAWN.value: ("withdrawn_reason",),
}

_DETAIL_READ_EXCLUDED = frozenset({"id", "opportunity_id", "created_at"})


def _yes_no(value: Any) -> int | None:
    if isinstance(value, str):
        value = value.strip().lower()
    if value in ("yes", "1", 1, True):
        return 1
    if value in ("no", "0", 0, False):
        return 0
    return None


def _sanitize(field_name: str, value: Any) -> Any:
    if field_name == "is_unqualified":
        return _yes_no(value) or 0
    if field_name in YES_NO_FIELDS:
        return _yes_no(value)
    if isinstance(value, str) and value == "":
        return None
    if isinstance(value, bool) and field_name.startswith("term"):
        return int(value)
    return value


def split_changes(
    payload: Mapping[str, Any],
    opportunity_fields: Iterable[str] = OPPORTUNITY_FIELDS,
    detail_fields: Iterable[str] = DETAIL_FIELDS,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Route submitted fields to the table that stores them.

    Fields outside the allowed lists are dropped. A field listed for both
    tables (``time_in_business``) is written to both.
    """
    opportunity_changes = {name: _sanitize(name, payload[name]) for name in opportunity_fields if name in payload}
    detail_changes = {name: _sanitize(name, payload[name]) for name in detail_fields if name in payload}
    return opportunity_changes, detail_changes


def _apply(target: Any, changes: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    changed: dict[str, Any] = {}
    previous: dict[str, Any] = {}
    for name, value in changes.items():
        current = getattr(target, name, None)
        if current == value:
            continue
        previous[name] = current
        changed[name] = value
        setattr(target, name, value)
    return changed, previous


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(value: Any) -> UUID:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError as exc:
        raise OpportunityError(code="not_found", message="Opportunity not found") from exc


def serialize_opportunity(opportunity: Opportunity, details: OpportunityDetails | None) -> OpportunityDTO:
    """Merge the opportunity row with its details row into one view."""
    data: dict[str, Any] = {column.key: getattr(opportunity, column.key) for column in Opportunity.__table__.columns}
    if details is not None:
        for column in OpportunityDetails.__table__.columns:
            if column.key in _DETAIL_READ_EXCLUDED:
                continue
            value = getattr(details, column.key)
            if data.get(column.key) is None:
                data[column.key] = value
    data["is_unqualified"] = data.get("is_unqualified") or 0
    data["status_label"] = format_status(opportunity.status)
    data["progress_percentage"] = progress_percentage(opportunity.status)
    return OpportunityDTO.model_validate(data)


async def next_opportunity_code(db: AsyncSession) -> str:
    prefix = settings.opportunity_code_prefix
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    result = await db.execute(
        select(Opportunity.opportunity_code).where(Opportunity.opportunity_code.like(f"{prefix}%"))
    )
    numbers = [int(match.group(1)) for code in result.scalars().all() if (match := pattern.match(code or ""))]
    next_number = max(numbers) + 1 if numbers else settings.opportunity_code_start
    return f"{prefix}{next_number}"


async def _load_opportunity(
    db: AsyncSession,
    opportunity_id: Any,
    *,
    organisation_id: Any = None,
) -> Opportunity:
    stmt = select(Opportunity).where(
        Opportunity.id == _as_uuid(opportunity_id),
        Opportunity.deleted_at.is_(None),
    )
    opportunity = (await db.execute(stmt)).scalar_one_or_none()
    if opportunity is None:
        raise OpportunityError(code="not_found", message="Opportunity not found")
    if organisation_id is not None and str(opportunity.organisation_id) != str(organisation_id):
        # Other organisations' opportunities are indistinguishable from missing ones.
        raise OpportunityError(code="not_found", message="Opportunity not found")
    return opportunity


async def _load_details(db: AsyncSession, opportunity_id: UUID) -> OpportunityDetails | None:
    stmt = select(OpportunityDetails).where(OpportunityDetails.opportunity_id == opportunity_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def _write_details(
    db: AsyncSession,
    opportunity: Opportunity,
    detail_changes: Mapping[str, Any],
    request_meta: RequestMeta | None,
) -> tuple[OpportunityDetails | None, dict[str, Any], dict[str, Any]]:
    details = await _load_details(db, opportunity.id)
    if not detail_changes:
        return details, {}, {}
    if details is None:
        details = OpportunityDetails(
            id=uuid4(),
            opportunity_id=opportunity.id,
            is_unqualified=0,
            ip_address=request_meta.ip_address if request_meta else None,
        )
        db.add(details)
    changed, previous = _apply(details, detail_changes)
    return details, changed, previous


async def _same_organisation_user(db: AsyncSession, user_id: Any, organisation_id: Any) -> bool:
    if user_id is None:
        return False
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    return user is not None and str(user.organisation_id) == str(organisation_id)


async def _committed_view(
    db: AsyncSession,
    opportunity: Opportunity,
    details: OpportunityDetails | None,
) -> OpportunityDTO:
    """Reload server-generated columns after a commit and build the response.

    The view is built before the audit append: a failed append rolls the
    session back and expires every loaded instance.
    """
    await db.refresh(opportunity)
    if details is not None:
        await db.refresh(details)
    return serialize_opportunity(opportunity, details)


def _with_status_reason(opportunity: Opportunity, changed: Mapping[str, Any]) -> dict[str, Any]:
    audit_fields = dict(changed)
    if "status" not in changed:
        return audit_fields
    for name in STATUS_REASON_FIELDS.get(normalize_status(changed["status"]), ()):
        current = getattr(opportunity, name, None)
        if name not in audit_fields and current:
            audit_fields[name] = current
    return audit_fields


async def create_opportunity(
    db: AsyncSession,
    payload: Mapping[str, Any],
    *,
    organisation_id: Any,
    actor_id: Any,
    client_id: Any = None,
    request_meta: RequestMeta | None = None,
) -> OpportunityDTO:
    if organisation_id is None:
        raise OpportunityError(code="organisation_required", message="Organisation is required")
    status = normalize_status(payload.get("status")) or OpportunityStatus.OPPORTUNITY.value
    if status not in CREATE_STATUSES:
        raise OpportunityError(
            code="invalid_status",
            message="New opportunities start as draft or opportunity",
            details={"status": status},
        )

    opportunity_changes, detail_changes = split_changes(payload)
    opportunity_changes["status"] = status
    # The team member must belong to the opportunity's organisation; anyone else falls back to the actor.
    team_member = opportunity_changes.pop("created_by", None)
    if team_member is not None and await _same_organisation_user(db, team_member, organisation_id):
        opportunity_changes["created_by"] = team_member
    else:
        opportunity_changes["created_by"] = actor_id

    code = await next_opportunity_code(db)
    opportunity = Opportunity(
        id=uuid4(),
        opportunity_code=code,
        organisation_id=_as_uuid(organisation_id),
        client_id=client_id,
        **opportunity_changes,
    )
    db.add(opportunity)
    details = None
    if detail_changes:
        details = OpportunityDetails(
            id=uuid4(),
            opportunity_id=opportunity.id,
            ip_address=request_meta.ip_address if request_meta else None,
            **{"is_unqualified": 0, **detail_changes},
        )
        db.add(details)
    await db.commit()
    logger.info("Opportunity %s created with status %s", code, status)
    view = await _committed_view(db, opportunity, details)

    await record_mutation(
        db,
        table_name=OPPORTUNITIES_TABLE,
        record_id=view.id,
        action=AuditAction.CREATE,
        changed_fields={"opportunity_code": code, **opportunity_changes, **detail_changes},
        actor_id=actor_id,
        request_meta=request_meta,
    )
    return view


async def get_opportunity(
    db: AsyncSession,
    opportunity_id: Any,
    *,
    organisation_id: Any = None,
) -> OpportunityDTO:
    opportunity = await _load_opportunity(db, opportunity_id, organisation_id=organisation_id)
    details = await _load_details(db, opportunity.id)
    return serialize_opportunity(opportunity, details)


async def update_opportunity_admin(
    db: AsyncSession,
    opportunity_id: Any,
    payload: Mapping[str, Any],
    *,
    actor_id: Any,
    finalise_complete: bool = False,
    request_meta: RequestMeta | None = None,
) -> OpportunityDTO:
    opportunity = await _load_opportunity(db, opportunity_id)
    opportunity_changes, detail_changes = split_changes(payload)

    changed, previous = _apply(opportunity, opportunity_changes)
    details, detail_changed, detail_previous = await _write_details(db, opportunity, detail_changes, request_meta)
    changed.update(detail_changed)
    previous.update(detail_previous)

    if not changed and not finalise_complete:
        return serialize_opportunity(opportunity, details)

    audit_fields = _with_status_reason(opportunity, changed)
    await db.commit()
    view = await _committed_view(db, opportunity, details)
    if finalise_complete:
        action, tag = AuditAction.FINALISE_COMPLETE, AuditCategory.DEAL_FINALISATION
    else:
        action, tag = AuditAction.UPDATE, None
    await record_mutation(
        db,
        table_name=OPPORTUNITIES_TABLE,
        record_id=view.id,
        action=action,
        changed_fields=audit_fields,
        previous_values=previous,
        actor_id=actor_id,
        request_meta=request_meta,
        field_name=tag,
    )
    return view


async def update_opportunity_referrer(
    db: AsyncSession,
    opportunity_id: Any,
    payload: Mapping[str, Any],
    *,
    organisation_id: Any,
    actor_id: Any,
    request_meta: RequestMeta | None = None,
) -> OpportunityDTO:
    """Referrer edits: drafts are editable, submitted opportunities only take a reference and team member."""
    opportunity = await _load_opportunity(db, opportunity_id, organisation_id=organisation_id)
    is_draft = normalize_status(opportunity.status) == OpportunityStatus.DRAFT.value

    if is_draft:
        opportunity_changes, detail_changes = split_changes(
            payload, REFERRER_DRAFT_OPPORTUNITY_FIELDS, REFERRER_DRAFT_DETAIL_FIELDS
        )
        fallback = AuditCategory.DRAFT_UPDATE
    else:
        opportunity_changes, detail_changes = {}, {}
        if "external_ref" in payload:
            opportunity_changes["external_ref"] = _sanitize("external_ref", payload["external_ref"])
        # A team member from another organisation is ignored rather than rejected.
        if "created_by" in payload and await _same_organisation_user(db, payload["created_by"], organisation_id):
            opportunity_changes["created_by"] = payload["created_by"]
        if not opportunity_changes:
            raise OpportunityError(code="no_valid_fields", message="No valid fields to update")
        fallback = AuditCategory.OPPORTUNITY

    if is_draft and "created_by" in opportunity_changes:
        if not await _same_organisation_user(db, opportunity_changes["created_by"], organisation_id):
            opportunity_changes.pop("created_by")

    changed, previous = _apply(opportunity, opportunity_changes)
    details, detail_changed, detail_previous = await _write_details(db, opportunity, detail_changes, request_meta)
    changed.update(detail_changed)
    previous.update(detail_previous)
    if not changed:
        return serialize_opportunity(opportunity, details)

    audit_fields = _with_status_reason(opportunity, changed)
    await db.commit()
    view = await _committed_view(db, opportunity, details)
    await record_mutation(
        db,
        table_name=OPPORTUNITIES_TABLE,
        record_id=view.id,
        action=AuditAction.UPDATE,
        changed_fields=audit_fields,
        previous_values=previous,
        actor_id=actor_id,
        request_meta=request_meta,
        field_name=classify_changed_fields(changed, fallback=fallback),
    )
    return view


async def _set_unqualified_fields(
    db: AsyncSession,
    opportunity_id: Any,
    values: Mapping[str, Any],
    *,
    actor_id: Any,
    request_meta: RequestMeta | None,
    require_flagged: bool = False,
) -> OpportunityDTO:
    """Write the unqualified flag and record it.

    The row always carries the full flag state, even when only the reason
    moved, so the history line reads from the flag rather than from the diff.
    """
    opportunity = await _load_opportunity(db, opportunity_id)
    if require_flagged:
        current = await _load_details(db, opportunity.id)
        if current is None or not current.is_unqualified:
            raise OpportunityError(code="not_unqualified", message="Opportunity is not marked as unqualified")
    details, _, previous = await _write_details(db, opportunity, values, request_meta)
    await db.commit()
    view = await _committed_view(db, opportunity, details)
    await record_mutation(
        db,
        table_name=OPPORTUNITIES_TABLE,
        record_id=view.id,
        action=AuditAction.UPDATE,
        changed_fields=dict(values),
        previous_values={name: previous.get(name, value) for name, value in values.items()},
        actor_id=actor_id,
        request_meta=request_meta,
        field_name=AuditCategory.UNQUALIFIED_STATUS,
    )
    return view


async def mark_unqualified(
    db: AsyncSession,
    opportunity_id: Any,
    *,
    reason: str | None,
    actor_id: Any,
    request_meta: RequestMeta | None = None,
) -> OpportunityDTO:
    return await _set_unqualified_fields(
        db,
        opportunity_id,
        {"is_unqualified": 1, "unqualified_reason": reason or None, "unqualified_date": _now()},
        actor_id=actor_id,
        request_meta=request_meta,
    )


async def requalify(
    db: AsyncSession,
    opportunity_id: Any,
    *,
    actor_id: Any,
    request_meta: RequestMeta | None = None,
) -> OpportunityDTO:
    return await _set_unqualified_fields(
        db,
        opportunity_id,
        {"is_unqualified": 0, "unqualified_reason": None, "unqualified_date": None},
        actor_id=actor_id,
        request_meta=request_meta,
        require_flagged=True,
    )


async def soft_delete_opportunity(
    db: AsyncSession,
    opportunity_id: Any,
    *,
    actor_id: Any,
    request_meta: RequestMeta | None = None,
) -> None:
    opportunity = await _load_opportunity(db, opportunity_id)
    record_id, code = opportunity.id, opportunity.opportunity_code
    deleted_at = _now()
    opportunity.deleted_at = deleted_at
    await db.commit()
    logger.info("Opportunity %s soft-deleted", code)
    await record_mutation(
        db,
        table_name=OPPORTUNITIES_TABLE,
        record_id=record_id,
        action=AuditAction.DELETE,
        changed_fields={"deleted_at": deleted_at},
        previous_values={"deleted_at": None},
        actor_id=actor_id,
        request_meta=request_meta,
    )


async def list_unqualified(db: AsyncSession, *, organisation_id: Any = None) -> list[OpportunityDTO]:
    stmt = (
        select(Opportunity, OpportunityDetails)
        .join(OpportunityDetails, OpportunityDetails.opportunity_id == Opportunity.id)
        .where(OpportunityDetails.is_unqualified == 1, Opportunity.deleted_at.is_(None))
        .order_by(OpportunityDetails.unqualified_date.desc())
    )
    if organisation_id is not None:
        stmt = stmt.where(Opportunity.organisation_id == _as_uuid(organisation_id))
    rows = (await db.execute(stmt)).all()
    return [serialize_opportunity(opportunity, details) for opportunity, details in rows]
