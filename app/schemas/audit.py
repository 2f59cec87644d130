# app/schemas/audit.py
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class AuditEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: str
    actor_id: Optional[str]
    event_type: str
    previous_value: Any = None
    new_value: Any = None
    note: Optional[str] = None
    created_at: datetime
