from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.services.opportunity_status import OpportunityStatus, normalize_status


class HistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    date: datetime
    time: str
    action: str
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    description: str
    user_name: str
    ip_address: str


class HistoryResponse(BaseModel):
    history: list[HistoryEntry]


# Typed views over the JSON stored in ``audit_logs.new_value``. They only read
# the payload; rows keep the JSON shape they were written with.


class StatusChangePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str
    declined_reason: str | None = None
    completed_declined_reason: str | None = None
    reason_declined: str | None = None
    withdrawn_reason: str | None = None

    def reason(self) -> str | None:
        status = normalize_status(self.status)
        if status == OpportunityStatus.DECLINED.value:
            return self.declined_reason or self.completed_declined_reason or self.reason_declined
        if status == OpportunityStatus.WITHDRAWN.value:
            return self.withdrawn_reason
        return None


class UnqualifiedPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    is_unqualified: Any = None
    # Older rows stored whatever the form submitted here.
    unqualified_reason: Any = None

    def reason_text(self) -> str | None:
        if self.unqualified_reason is None or self.unqualified_reason == "":
            return None
        return str(self.unqualified_reason)

    @property
    def flagged(self) -> bool:
        value = self.is_unqualified
        if isinstance(value, str):
            return value.strip().lower() in {"1", "yes", "true"}
        return value is True or value == 1


class FieldGroupPayload(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "FieldGroupPayload":
        return cls(fields=dict(data))

    def has_any(self, names: tuple[str, ...]) -> bool:
        return any(name in self.fields for name in names)
