from cardlink.models.client import ALLOWED_TRANSITIONS, Client, ClientStatus, HistoryAction
from cardlink.models.audit_log import AuditLog

__all__ = ["ALLOWED_TRANSITIONS", "AuditLog", "Client", "ClientStatus", "HistoryAction"]
