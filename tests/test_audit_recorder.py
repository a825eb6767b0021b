import json
import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.services.audit import (
    AuditAction,
    AuditCategory,
    RequestMeta,
    classify_changed_fields,
    record_mutation,
    serialize_for_audit,
)
from conftest import FakeAsyncSession


@pytest.mark.parametrize(
    ("changed", "expected"),
    [
        ({"status": "approved", "is_unqualified": 1, "notes": "x"}, "status_change"),
        ({"is_unqualified": 1, "external_ref": "R-1"}, "unqualified_status"),
        ({"external_ref": "R-1", "created_by": "u"}, "external_ref"),
        ({"created_by": "u", "lender": "Big Bank"}, "team_member"),
        ({"target_settlement_date": "2026-05-01", "lender": "x"}, "target_settlement"),
        ({"date_settled": "2026-05-01"}, "date_settled"),
        ({"lender": "Big Bank", "abn": "123"}, "lender"),
        ({"abn": "123", "loan_amount": 10}, "client_details"),
        ({"loan_amount": 10, "loan_type": "commercial"}, "loan_details"),
        ({"net_profit": 1, "icr": 2}, "financial_details"),
        ({"icr": 2, "lvr": 60}, "icr_lvr"),
        ({"payment_amount": 5, "flex_id": "F"}, "payment_info"),
        ({"loan_acc_ref_no": "L-1"}, "loan_reference"),
        ({"withdrawn_reason": "Client withdrew", "notes": "n"}, "reason"),
        ({"notes": "n", "city": "Sydney"}, "notes"),
        ({"postcode": "2000"}, "address"),
        ({"term1": 1}, "opportunity"),
        ({}, "opportunity"),
    ],
)
def test_classification_priority(changed, expected) -> None:
    assert classify_changed_fields(changed) == expected


def test_classification_fallback_is_configurable() -> None:
    assert classify_changed_fields({"term2": 1}, fallback=AuditCategory.DRAFT_UPDATE) == "draft_update"


def test_serialize_for_audit_handles_domain_types() -> None:
    opportunity_id = uuid4()
    assert serialize_for_audit(
        {"loan_amount": Decimal("250000.00"), "target_settlement_date": date(2026, 5, 1), "id": opportunity_id}
    ) == {"loan_amount": "250000.00", "target_settlement_date": "2026-05-01", "id": str(opportunity_id)}


@pytest.mark.asyncio
async def test_record_mutation_appends_one_classified_row() -> None:
    db = FakeAsyncSession()
    actor_id = uuid4()
    record_id = uuid4()

    entry = await record_mutation(
        db,
        table_name="opportunities",
        record_id=record_id,
        action=AuditAction.UPDATE,
        changed_fields={"status": "declined", "declined_reason": "Low credit score"},
        previous_values={"status": "approved", "declined_reason": None},
        actor_id=actor_id,
        request_meta=RequestMeta(ip_address="203.0.113.9", user_agent="pytest"),
    )

    assert entry is not None
    assert db.audit_rows() == [entry]
    assert db.commits == 1
    assert entry.field_name == "status_change"
    assert entry.record_id == str(record_id)
    assert entry.user_id == actor_id
    assert entry.ip_address == "203.0.113.9"
    assert entry.user_agent == "pytest"
    assert json.loads(entry.new_value) == {"status": "declined", "declined_reason": "Low credit score"}
    assert json.loads(entry.old_value) == {"status": "approved", "declined_reason": None}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("action", "tag"),
    [
        (AuditAction.CREATE, "opportunity"),
        (AuditAction.DELETE, "deleted_at"),
        (AuditAction.FINALISE_COMPLETE, "deal_finalisation"),
    ],
)
async def test_record_mutation_default_tags_by_action(action, tag) -> None:
    db = FakeAsyncSession()
    entry = await record_mutation(
        db,
        table_name="opportunities",
        record_id=uuid4(),
        action=action,
        changed_fields={"status": "opportunity"},
    )
    assert entry.field_name == tag
    assert entry.action == action.value


@pytest.mark.asyncio
async def test_explicit_field_name_wins() -> None:
    db = FakeAsyncSession()
    entry = await record_mutation(
        db,
        table_name="opportunities",
        record_id=uuid4(),
        action="update",
        changed_fields={"status": "draft"},
        field_name=AuditCategory.DRAFT_UPDATE,
    )
    assert entry.field_name == "draft_update"


@pytest.mark.asyncio
async def test_record_mutation_swallows_append_failure(caplog) -> None:
    db = FakeAsyncSession()
    db.fail_commit_on = 1

    # app.audit does not propagate to the root logger caplog listens on.
    audit_logger = logging.getLogger("app.audit")
    audit_logger.addHandler(caplog.handler)
    try:
        entry = await record_mutation(
            db,
            table_name="opportunities",
            record_id="abc",
            action="update",
            changed_fields={"notes": "hello"},
        )
    finally:
        audit_logger.removeHandler(caplog.handler)

    assert entry is None
    assert db.rollbacks == 1
    assert any("Audit append failed" in record.getMessage() for record in caplog.records)
