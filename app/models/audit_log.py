import uuid

from sqlalchemy import Column, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


AUDIT_ACTIONS = ("create", "update", "delete", "finalise_complete")


class AuditLog(Base):
    """Append-only mutation record.

    ``old_value``/``new_value`` hold JSON text. Rows written before category
    tagging existed have ``field_name`` NULL and may carry non-JSON strings,
    so the columns stay ``Text`` rather than ``JSONB``.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_table_record_created", "table_name", "record_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    table_name = Column(String(100), nullable=False)
    record_id = Column(String(255), nullable=False)
    action = Column(String(50), nullable=False)
    field_name = Column(String(100), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    ip_address = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
