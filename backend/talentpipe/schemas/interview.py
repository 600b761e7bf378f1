from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

InterviewOutcome = Literal["passed", "failed"]


class InterviewBook(BaseModel):
    stage_id: int
    interviewer_id: int
    scheduled_at: datetime
    duration: Optional[int] = None
    meeting_link: Optional[str] = Field(default=None, max_length=500)


class InterviewReschedule(BaseModel):
    new_date_time: datetime


class InterviewCancel(BaseModel):
    reason: Optional[str] = None


class InterviewOutcomeRequest(BaseModel):
    outcome: InterviewOutcome
    notes: str = ""


class InterviewOut(BaseModel):
    interview_id: int
    stage_id: int
    candidate_id: int
    interviewer_id: int
    scheduled_at: datetime
    duration: int
    status: str
    outcome: Optional[str] = None
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
