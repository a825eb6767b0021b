import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    SmallInteger,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Opportunity(Base):
    __tablename__ = "opportunities"
    # No CHECK on status: migrated rows may carry values outside the canonical set.
    __table_args__ = (
        Index("ix_opportunities_org_status", "organisation_id", "status"),
        Index("ix_opportunities_deleted_at", "deleted_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    opportunity_code = Column(String(20), nullable=False, unique=True)
    organisation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organisations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    client_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(40), nullable=False, default="opportunity", index=True)

    entity_type = Column(String(50), nullable=True)
    industry = Column(String(100), nullable=True)
    time_in_business = Column(String(50), nullable=True)
    abn = Column(String(20), nullable=True)

    loan_amount = Column(Numeric(18, 2), nullable=True)
    property_value = Column(Numeric(18, 2), nullable=True)
    loan_type = Column(String(50), nullable=True)
    loan_purpose = Column(String(50), nullable=True)
    asset_type = Column(String(50), nullable=True)
    asset_address = Column(String(500), nullable=True)
    lender = Column(String(255), nullable=True)
    lvr = Column(Numeric(10, 2), nullable=True)
    icr = Column(Numeric(10, 2), nullable=True)

    external_ref = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    declined_reason = Column(Text, nullable=True)
    completed_declined_reason = Column(Text, nullable=True)
    withdrawn_reason = Column(Text, nullable=True)

    target_settlement_date = Column(Date, nullable=True)
    date_settled = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class OpportunityDetails(Base):
    """Extended fields, created on the first detail write."""

    __tablename__ = "opportunity_details"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    opportunity_id = Column(
        UUID(as_uuid=True),
        ForeignKey("opportunities.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    address = Column(String(500), nullable=True)
    street_address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(20), nullable=True)
    postcode = Column(String(10), nullable=True)
    client_address = Column(String(500), nullable=True)
    time_in_business = Column(String(50), nullable=True)
    brief_overview = Column(Text, nullable=True)

    net_profit = Column(Numeric(18, 2), nullable=True)
    ammortisation = Column(Numeric(18, 2), nullable=True)
    deprecition = Column(Numeric(18, 2), nullable=True)
    existing_interest_costs = Column(Numeric(18, 2), nullable=True)
    rental_expense = Column(Numeric(18, 2), nullable=True)
    proposed_rental_income = Column(Numeric(18, 2), nullable=True)
    rental_income = Column(String(10), nullable=True)
    existing_liabilities = Column(SmallInteger, nullable=True)
    additional_property = Column(SmallInteger, nullable=True)
    smsf_structure = Column(SmallInteger, nullable=True)
    ato_liabilities = Column(SmallInteger, nullable=True)
    credit_file_issues = Column(SmallInteger, nullable=True)

    term1 = Column(SmallInteger, nullable=True)
    term2 = Column(SmallInteger, nullable=True)
    term3 = Column(SmallInteger, nullable=True)
    term4 = Column(SmallInteger, nullable=True)

    reason_declined = Column(Text, nullable=True)
    disqualify_reason = Column(Text, nullable=True)
    outcome_level = Column(String(50), nullable=True)
    additional_notes = Column(Text, nullable=True)

    loan_acc_ref_no = Column(String(100), nullable=True)
    flex_id = Column(String(100), nullable=True)
    payment_received_date = Column(Date, nullable=True)
    payment_amount = Column(Numeric(18, 2), nullable=True)
    deal_finalisation_status = Column(String(50), nullable=True)

    is_unqualified = Column(SmallInteger, nullable=False, default=0)
    unqualified_reason = Column(Text, nullable=True)
    unqualified_date = Column(DateTime(timezone=True), nullable=True)

    ip_address = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
