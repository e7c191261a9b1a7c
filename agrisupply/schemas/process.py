"""Process tracking schemas"""

from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum


class LotRunStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class PipelineStage(BaseModel):
    position: int
    key: str
    name: str
    lots_in_stage: int = 0


class ProcessLotRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    supply_batch_id: int
    process_id: int
    status: LotRunStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
