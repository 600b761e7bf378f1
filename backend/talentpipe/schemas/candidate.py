from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from talentpipe.schemas.stage import StageOut
from talentpipe.schemas.stage_chain import StageChainEntry


class CandidateCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    city: Optional[str] = Field(default=None, max_length=255)
    source: Optional[str] = Field(default=None, max_length=100)
    vacancy_id: Optional[int] = None
    interview_stage_chain: List[StageChainEntry] = Field(min_length=1)


class StageChainUpdate(BaseModel):
    interview_stage_chain: List[StageChainEntry] = Field(min_length=1)


class DismissRequest(BaseModel):
    dismissal_reason: str = Field(min_length=1)
    dismissal_date: datetime


class CandidateOut(BaseModel):
    candidate_id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    source: Optional[str] = None
    vacancy_id: Optional[int] = None
    interview_stage_chain: Optional[list] = None
    current_stage_index: int
    status: str
    rejection_reason: Optional[str] = None
    rejection_stage: Optional[str] = None
    dismissal_reason: Optional[str] = None
    dismissal_date: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CandidateDetailOut(CandidateOut):
    stages: List[StageOut] = []


class WorkloadItemOut(BaseModel):
    candidate: CandidateOut
    stage: StageOut
