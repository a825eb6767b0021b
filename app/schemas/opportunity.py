from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Yes/No answers arrive as "Yes"/"No", 1/0 or booleans and are stored as 1/0.
YesNo = int | bool | str | None


class OpportunityFields(BaseModel):
    """Every editable opportunity field. Only fields present in the request count as changes."""

    model_config = ConfigDict(extra="ignore", json_encoders={Decimal: lambda value: str(value)})

    entity_type: str | None = None
    industry: str | None = None
    time_in_business: str | None = None
    abn: str | None = None
    loan_amount: Decimal | None = None
    property_value: Decimal | None = None
    loan_type: str | None = None
    loan_purpose: str | None = None
    asset_type: str | None = None
    asset_address: str | None = None
    lender: str | None = None
    lvr: Decimal | None = None
    icr: Decimal | None = None
    external_ref: str | None = None
    target_settlement_date: date | None = None
    date_settled: date | None = None
    status: str | None = None
    notes: str | None = None
    declined_reason: str | None = None
    completed_declined_reason: str | None = None
    withdrawn_reason: str | None = None
    created_by: UUID | None = None

    address: str | None = None
    street_address: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    client_address: str | None = None
    brief_overview: str | None = None
    net_profit: Decimal | None = None
    ammortisation: Decimal | None = None
    deprecition: Decimal | None = None
    existing_interest_costs: Decimal | None = None
    rental_expense: Decimal | None = None
    proposed_rental_income: Decimal | None = None
    rental_income: str | None = None
    existing_liabilities: YesNo = None
    additional_property: YesNo = None
    smsf_structure: YesNo = None
    ato_liabilities: YesNo = None
    credit_file_issues: YesNo = None
    term1: int | bool | None = None
    term2: int | bool | None = None
    term3: int | bool | None = None
    term4: int | bool | None = None
    reason_declined: str | None = None
    disqualify_reason: str | None = None
    outcome_level: str | None = None
    additional_notes: str | None = None
    loan_acc_ref_no: str | None = None
    flex_id: str | None = None
    payment_received_date: date | None = None
    payment_amount: Decimal | None = None
    deal_finalisation_status: str | None = None
    is_unqualified: YesNo = None
    unqualified_reason: str | None = None
    unqualified_date: datetime | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value == "":
            return None
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class OpportunityCreateRequest(OpportunityFields):
    # Admins pick the organisation; referrers always create in their own.
    organisation_id: UUID | None = None
    client_id: UUID | None = None
    status: str = "opportunity"

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude={"organisation_id", "client_id"})
        data.setdefault("status", self.status)
        return data


class OpportunityAdminUpdateRequest(OpportunityFields):
    finalise_complete: bool = False

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"finalise_complete"})


class OpportunityReferrerUpdateRequest(OpportunityFields):
    pass


class UnqualifyRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class OpportunityDTO(OpportunityFields):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    opportunity_code: str
    organisation_id: UUID
    client_id: UUID | None = None
    status: str
    status_label: str
    progress_percentage: float
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


class OpportunityListResponse(BaseModel):
    items: list[OpportunityDTO]
    total: int
