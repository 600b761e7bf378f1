from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class PipelineEventOut(BaseModel):
    event_id: int
    candidate_id: int
    related_entity_type: str
    related_entity_id: Optional[int] = None
    action_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    performed_by: Optional[int] = None
    meta_json: Dict[str, Any]
    created_at: datetime
