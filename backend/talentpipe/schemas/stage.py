from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, conint

Rating = conint(ge=1, le=5)
StageOutcome = Literal["passed", "failed"]


class StageOut(BaseModel):
    stage_id: int
    candidate_id: int
    stage_index: int
    stage_name: str
    interviewer_id: int
    status: str
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    comments: Optional[str] = None
    rating: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StageOutcomeRequest(BaseModel):
    # Comments stay optional here so an empty value reaches the engine and fails as a pipeline ValidationError.
    status: StageOutcome
    comments: str = ""
    completed_at: Optional[datetime] = None
    rating: Optional[Rating] = None


class StageCommentsUpdate(BaseModel):
    comments: str = Field(default="")
