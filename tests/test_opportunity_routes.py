from uuid import uuid4

from app.models.audit_log import AuditLog
from app.models.opportunity import Opportunity
from conftest import FakeResult, entity_handler, make_audit_log, make_opportunity


def test_admin_reads_opportunity_inside_envelope(client_as, fake_db, admin_user) -> None:
    opportunity = make_opportunity(status="application_created")
    fake_db.on_execute(entity_handler(Opportunity, FakeResult(scalar=opportunity)))

    response = client_as(admin_user).get(f"/api/v1/admin/opportunities/{opportunity.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == "ok"
    assert body["data"]["opportunity_code"] == "CF10001"
    assert body["data"]["status_label"] == "Application Created"
    assert body["data"]["is_unqualified"] == 0


def test_admin_routes_reject_referrers(client_as, referrer_user) -> None:
    response = client_as(referrer_user).get(f"/api/v1/admin/opportunities/{uuid4()}")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_missing_opportunity_maps_to_404(client_as, admin_user) -> None:
    response = client_as(admin_user).patch(f"/api/v1/admin/opportunities/{uuid4()}", json={"notes": "x"})

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "not_found"
    assert body["message"] == "Opportunity not found"
    assert body["data"] is None


def test_admin_patch_records_audit_row(client_as, fake_db, admin_user) -> None:
    opportunity = make_opportunity()
    fake_db.on_execute(entity_handler(Opportunity, FakeResult(scalar=opportunity)))

    response = client_as(admin_user).patch(
        f"/api/v1/admin/opportunities/{opportunity.id}",
        json={"status": "application_submitted", "lender": ""},
        headers={"user-agent": "route-test"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "application_submitted"
    (row,) = fake_db.audit_rows()
    assert row.field_name == "status_change"
    assert row.user_id == admin_user.id
    assert row.user_agent == "route-test"


def test_admin_patch_validation_error_envelope(client_as, admin_user) -> None:
    response = client_as(admin_user).patch(
        f"/api/v1/admin/opportunities/{uuid4()}", json={"loan_amount": "lots"}
    )

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_admin_create_requires_organisation(client_as, admin_user) -> None:
    response = client_as(admin_user).post("/api/v1/admin/opportunities", json={"status": "opportunity"})

    assert response.status_code == 400
    assert response.json()["code"] == "organisation_required"


def test_admin_delete_is_soft(client_as, fake_db, admin_user) -> None:
    opportunity = make_opportunity()
    fake_db.on_execute(entity_handler(Opportunity, FakeResult(scalar=opportunity)))

    response = client_as(admin_user).delete(f"/api/v1/admin/opportunities/{opportunity.id}")

    assert response.status_code == 200
    assert response.json()["data"] is None
    assert opportunity.deleted_at is not None
    assert fake_db.audit_rows()[0].action == "delete"


def test_admin_history_feed(client_as, fake_db, admin_user) -> None:
    record_id = uuid4()
    fake_db.on_execute(
        entity_handler(
            AuditLog,
            FakeResult(
                items=[
                    make_audit_log(
                        record_id=record_id,
                        field_name="status_change",
                        new_value={"status": "declined", "declined_reason": "Low credit score"},
                    )
                ]
            ),
        )
    )

    response = client_as(admin_user).get(f"/api/v1/admin/opportunities/{record_id}/history")

    assert response.status_code == 200
    (entry,) = response.json()["data"]["history"]
    assert entry["description"] == "Status changed to Declined: Low credit score"
    assert entry["user_name"] == "System"
    assert entry["ip_address"] == "-"


def test_referrer_update_of_submitted_opportunity_needs_valid_fields(client_as, fake_db, referrer_user) -> None:
    opportunity = make_opportunity(status="approved")
    fake_db.on_execute(entity_handler(Opportunity, FakeResult(scalar=opportunity)))

    response = client_as(referrer_user).patch(
        f"/api/v1/referrer/opportunities/{opportunity.id}", json={"loan_amount": "100"}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "no_valid_fields"
    assert body["message"] == "No valid fields to update"


def test_referrer_history_hidden_for_other_organisations(client_as, fake_db, referrer_user) -> None:
    opportunity = make_opportunity(organisation_id=uuid4())
    fake_db.on_execute(entity_handler(Opportunity, FakeResult(scalar=opportunity)))

    response = client_as(referrer_user).get(f"/api/v1/referrer/opportunities/{opportunity.id}/history")

    assert response.status_code == 404


def test_referrer_creates_in_own_organisation(client_as, fake_db, referrer_user) -> None:
    response = client_as(referrer_user).post(
        "/api/v1/referrer/opportunities",
        json={"status": "draft", "organisation_id": str(uuid4()), "entity_type": "Company"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["organisation_id"] == str(referrer_user.organisation_id)
    assert data["status"] == "draft"
    assert fake_db.audit_rows()[0].field_name == "opportunity"
