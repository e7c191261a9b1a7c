"""
Supplier COA API endpoints
"""
from datetime import date
from typing import Any, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user, get_storage
from agrisupply.models import UserProfile
from agrisupply.schemas.supply import CoaStatusResponse
from agrisupply.services.storage import ObjectStorage, UploadedFile
from agrisupply.services.supplies.coa import SupplierCoaService

router = APIRouter()


@router.get("/{supplier_id}/coa", response_model=CoaStatusResponse)
async def read_coa_status(
    supplier_id: int,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Latest certificate of analysis: NONE, VALID or EXPIRED
    """
    return SupplierCoaService(db, current_user).get_status(supplier_id)


@router.post("/{supplier_id}/coa", response_model=CoaStatusResponse, status_code=status.HTTP_201_CREATED)
async def add_coa(
    supplier_id: int,
    file: UploadFile = File(...),
    expiry_date: Optional[date] = Form(None),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage)
) -> Any:
    """
    Upload a new COA for the supplier and return the refreshed status
    """
    service = SupplierCoaService(db, current_user, storage)
    upload = UploadedFile(file.filename, await file.read(), file.content_type)
    service.add_coa(supplier_id, upload, expiry_date)
    return service.get_status(supplier_id)
