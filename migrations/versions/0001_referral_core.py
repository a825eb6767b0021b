"""Create organisations, users, opportunities, opportunity_details and audit_logs"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_referral_core"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 2), nullable=True)


def _flag(name: str) -> sa.Column:
    return sa.Column(name, sa.SmallInteger(), nullable=True)


def upgrade() -> None:
    op.create_table(
        "organisations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "organisation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organisations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("surname", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('super_admin', 'admin_team', 'referrer_admin', 'referrer_team')",
            name="ck_users_role",
        ),
    )
    op.create_index("ix_users_organisation_id", "users", ["organisation_id"])

    op.create_table(
        "opportunities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("opportunity_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column(
            "organisation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organisations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="opportunity"),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("industry", sa.String(length=100), nullable=True),
        sa.Column("time_in_business", sa.String(length=50), nullable=True),
        sa.Column("abn", sa.String(length=20), nullable=True),
        _money("loan_amount"),
        _money("property_value"),
        sa.Column("loan_type", sa.String(length=50), nullable=True),
        sa.Column("loan_purpose", sa.String(length=50), nullable=True),
        sa.Column("asset_type", sa.String(length=50), nullable=True),
        sa.Column("asset_address", sa.String(length=500), nullable=True),
        sa.Column("lender", sa.String(length=255), nullable=True),
        sa.Column("lvr", sa.Numeric(10, 2), nullable=True),
        sa.Column("icr", sa.Numeric(10, 2), nullable=True),
        sa.Column("external_ref", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("declined_reason", sa.Text(), nullable=True),
        sa.Column("completed_declined_reason", sa.Text(), nullable=True),
        sa.Column("withdrawn_reason", sa.Text(), nullable=True),
        sa.Column("target_settlement_date", sa.Date(), nullable=True),
        sa.Column("date_settled", sa.Date(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_opportunities_organisation_id", "opportunities", ["organisation_id"])
    op.create_index("ix_opportunities_client_id", "opportunities", ["client_id"])
    op.create_index("ix_opportunities_status", "opportunities", ["status"])
    op.create_index("ix_opportunities_org_status", "opportunities", ["organisation_id", "status"])
    op.create_index("ix_opportunities_deleted_at", "opportunities", ["deleted_at"])

    op.create_table(
        "opportunity_details",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "opportunity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("opportunities.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("street_address", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=20), nullable=True),
        sa.Column("postcode", sa.String(length=10), nullable=True),
        sa.Column("client_address", sa.String(length=500), nullable=True),
        sa.Column("time_in_business", sa.String(length=50), nullable=True),
        sa.Column("brief_overview", sa.Text(), nullable=True),
        _money("net_profit"),
        _money("ammortisation"),
        _money("deprecition"),
        _money("existing_interest_costs"),
        _money("rental_expense"),
        _money("proposed_rental_income"),
        sa.Column("rental_income", sa.String(length=10), nullable=True),
        _flag("existing_liabilities"),
        _flag("additional_property"),
        _flag("smsf_structure"),
        _flag("ato_liabilities"),
        _flag("credit_file_issues"),
        _flag("term1"),
        _flag("term2"),
        _flag("term3"),
        _flag("term4"),
        sa.Column("reason_declined", sa.Text(), nullable=True),
        sa.Column("disqualify_reason", sa.Text(), nullable=True),
        sa.Column("outcome_level", sa.String(length=50), nullable=True),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("loan_acc_ref_no", sa.String(length=100), nullable=True),
        sa.Column("flex_id", sa.String(length=100), nullable=True),
        sa.Column("payment_received_date", sa.Date(), nullable=True),
        _money("payment_amount"),
        sa.Column("deal_finalisation_status", sa.String(length=50), nullable=True),
        sa.Column("is_unqualified", sa.SmallInteger(), nullable=False, server_default="0"),
        sa.Column("unqualified_reason", sa.Text(), nullable=True),
        sa.Column("unqualified_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("table_name", sa.String(length=100), nullable=False),
        sa.Column("record_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("field_name", sa.String(length=100), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index(
        "ix_audit_logs_table_record_created",
        "audit_logs",
        ["table_name", "record_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_audit_logs_table_record_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("opportunity_details")
    op.drop_index("ix_opportunities_deleted_at", table_name="opportunities")
    op.drop_index("ix_opportunities_org_status", table_name="opportunities")
    op.drop_index("ix_opportunities_status", table_name="opportunities")
    op.drop_index("ix_opportunities_client_id", table_name="opportunities")
    op.drop_index("ix_opportunities_organisation_id", table_name="opportunities")
    op.drop_table("opportunities")
    op.drop_index("ix_users_organisation_id", table_name="users")
    op.drop_table("users")
    op.drop_table("organisations")
