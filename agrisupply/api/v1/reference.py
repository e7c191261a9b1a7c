"""
Reference data API endpoints
"""
from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user
from agrisupply.models import UserProfile
from agrisupply.schemas.reference import ReferenceDataResponse
from agrisupply.services.reference_data import ReferenceDataService

router = APIRouter()


@router.get("/reference-data", response_model=ReferenceDataResponse)
async def read_reference_data(
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Warehouses, products, units, quality and packaging parameters, suppliers
    and user profiles for the intake screens
    """
    return ReferenceDataService(db).load()
