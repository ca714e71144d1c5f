"""
CardLink Backend — Audit Log Schemas
======================================

What:  Read model for audit log entries (GET /api/logs, client detail).
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor: str
    actor_role: str
    action: str
    target_client_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    timestamp: datetime
