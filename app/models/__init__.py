from app.models.audit_log import AuditLog
from app.models.opportunity import Opportunity, OpportunityDetails
from app.models.organisation import Organisation
from app.models.user import User

__all__ = [
    "AuditLog",
    "Opportunity",
    "OpportunityDetails",
    "Organisation",
    "User",
]
