"""
Process tracking API endpoints
"""
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user
from agrisupply.models import UserProfile
from agrisupply.schemas.process import LotRunStatus, PipelineStage, ProcessLotRunResponse
from agrisupply.services.process.pipeline import ProcessLotRunService, pipeline_overview

router = APIRouter()


@router.get("/pipeline", response_model=List[PipelineStage])
async def read_pipeline(
    current_user: UserProfile = Depends(get_current_user)
) -> Any:
    """
    Production stages from receiving to allocation
    """
    return pipeline_overview()


@router.get("/lot-runs", response_model=List[ProcessLotRunResponse])
async def list_lot_runs(
    status: Optional[LotRunStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    return ProcessLotRunService(db).list_runs(status.value if status else None, limit)
