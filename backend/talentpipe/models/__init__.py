from talentpipe.db.base import Base
from talentpipe.models.candidate import Candidate
from talentpipe.models.event import PipelineEventRecord
from talentpipe.models.interview import Interview
from talentpipe.models.stage import Stage
from talentpipe.models.user import User

__all__ = [
    "Base",
    "Candidate",
    "Interview",
    "PipelineEventRecord",
    "Stage",
    "User",
]
