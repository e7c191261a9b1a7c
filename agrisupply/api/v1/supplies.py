"""
Supplies API endpoints
List, wizard step checks, submit and edit of supply intakes
"""
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user, get_storage
from agrisupply.models import UserProfile
from agrisupply.schemas.supply import (
    SupplyForm, StepValidationResult, SupplySubmitResult, DocNumberPreview, SupplyListPage
)
from agrisupply.services.reference_data import ReferenceDataService
from agrisupply.services.storage import ObjectStorage, UploadedFile
from agrisupply.services.supplies.intake import SupplyIntakeService
from agrisupply.services.supplies.listing import SupplyListService
from agrisupply.services.supplies.navigation import SupplyDetailService
from agrisupply.services.supplies.wizard import (
    LAST_STEP, NO_QUALITY_PARAMETERS_WARNING, validate_step
)

router = APIRouter()


def _parse_form(payload: str) -> SupplyForm:
    try:
        return SupplyForm.model_validate_json(payload)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        )


async def _collect_files(
    invoice_file: Optional[UploadFile], signature_file: Optional[UploadFile]
) -> Dict[str, UploadedFile]:
    files = {}
    for field, upload in (("invoice_file", invoice_file), ("signature_file", signature_file)):
        if upload is not None and upload.filename:
            files[field] = UploadedFile(upload.filename, await upload.read(), upload.content_type)
    return files


@router.get("", response_model=SupplyListPage)
async def list_supplies(
    search: str = Query("", description="Doc number, warehouse or supplier"),
    received_from: Optional[date] = None,
    received_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Supplies page with the summary figures of the whole filtered set
    """
    return SupplyListService(db).list_page(search, received_from, received_to, page)


@router.get("/doc-number", response_model=DocNumberPreview)
async def preview_doc_number(
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Next document number for today; assigned for real on submit
    """
    return {"doc_no": SupplyIntakeService(db, current_user).preview_doc_number()}


@router.post("/wizard/validate/{step}", response_model=StepValidationResult)
async def validate_wizard_step(
    step: int,
    form: SupplyForm,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Check one wizard step; `next_step` is where "Next" leads
    """
    if step < 0 or step > LAST_STEP:
        raise HTTPException(status_code=404, detail=f"Unknown wizard step {step}")

    quality_parameters = ReferenceDataService(db).quality_parameters()
    message = validate_step(form, step, quality_parameters)
    valid = message is None
    return {
        "step": step,
        "valid": valid,
        "message": message,
        "next_step": min(step + 1, LAST_STEP) if valid else step,
        "warning": NO_QUALITY_PARAMETERS_WARNING if step == 4 and not quality_parameters else None,
    }


@router.post("", response_model=SupplySubmitResult, status_code=status.HTTP_201_CREATED)
async def create_supply(
    payload: str = Form(..., description="SupplyForm as JSON"),
    invoice_file: Optional[UploadFile] = File(None),
    signature_file: Optional[UploadFile] = File(None),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage)
) -> Any:
    """
    Submit a completed wizard
    """
    form = _parse_form(payload)
    files = await _collect_files(invoice_file, signature_file)
    return SupplyIntakeService(db, current_user, storage).create_supply(form, files)


@router.get("/{supply_id}")
async def read_supply(
    supply_id: int,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Supply with lines, batches, checks, documents and sign-off joined in
    """
    return SupplyDetailService(db).get_detail(supply_id)


@router.get("/{supply_id}/edit", response_model=SupplyForm)
async def read_supply_form(
    supply_id: int,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Wizard state for edit mode
    """
    return SupplyIntakeService(db, current_user).load_form(supply_id)


@router.put("/{supply_id}", response_model=SupplySubmitResult)
async def update_supply(
    supply_id: int,
    payload: str = Form(..., description="SupplyForm as JSON"),
    invoice_file: Optional[UploadFile] = File(None),
    signature_file: Optional[UploadFile] = File(None),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage)
) -> Any:
    """
    Save an edited supply
    """
    form = _parse_form(payload)
    files = await _collect_files(invoice_file, signature_file)
    return SupplyIntakeService(db, current_user, storage).update_supply(supply_id, form, files)
