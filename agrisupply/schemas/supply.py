"""Supply intake schemas

The intake form travels as one JSON document; its string-typed fields mirror
what the user typed so that the wizard rules can re-run server-side.
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List, Dict, Any, Union
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# Enums
class DocStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class SupplyQualityStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class BatchQualityStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    HOLD = "HOLD"
    PENDING = "PENDING"


class ProcessStatus(str, Enum):
    UNPROCESSED = "UNPROCESSED"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"


class SignatureType(str, Enum):
    E_SIGNATURE = "E_SIGNATURE"
    UPLOADED_DOCUMENT = "UPLOADED_DOCUMENT"


def _as_text(value: Any) -> Any:
    """Numbers sent by JSON clients are kept as the text the form would hold"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return value


# Form sections
class BatchEntry(BaseModel):
    product_id: str = ""
    unit_id: str = ""
    qty: str = ""
    accepted_qty: str = "0"
    rejected_qty: str = "0"
    unit_price: str = ""

    @field_validator("product_id", "unit_id", "qty", "accepted_qty", "rejected_qty", "unit_price", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class QualityEntry(BaseModel):
    score: Optional[Union[int, str]] = 3
    remarks: str = ""
    results: str = ""

    @field_validator("remarks", "results", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class SupplyDocumentsForm(BaseModel):
    invoice_number: str = ""
    driver_license_name: str = ""
    batch_number: str = ""
    production_date: str = ""
    expiry_date: str = ""
    coa_available: str = ""
    invoice_file_name: Optional[str] = None


class VehicleInspectionForm(BaseModel):
    vehicle_clean: str = ""
    no_foreign_objects: str = ""
    no_pest_infestation: str = ""
    remarks: str = ""

    def is_complete(self) -> bool:
        return bool(self.vehicle_clean and self.no_foreign_objects and self.no_pest_infestation)


class PackagingQualityForm(BaseModel):
    inaccurate_labelling: str = ""
    visible_damage: str = ""
    specified_quantity: str = ""
    odor: str = ""
    strength_integrity: str = ""
    remarks: str = ""

    @field_validator("specified_quantity", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)

    def is_complete(self) -> bool:
        return bool(
            self.inaccurate_labelling and self.visible_damage and self.specified_quantity
            and self.odor and self.strength_integrity
        )


class SupplierSignOffForm(BaseModel):
    signature_type: str = ""
    signature_data: Optional[str] = None
    document_file_name: Optional[str] = None
    signed_by_name: str = ""
    remarks: str = ""


class PaymentEntry(BaseModel):
    """Optional payment captured together with the supply"""
    amount: str = ""
    paid_at: str = ""
    reference: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class SupplyForm(BaseModel):
    """Complete state of the intake wizard"""
    doc_no: str = ""
    warehouse_id: str = ""
    supplier_id: str = ""
    received_at: str = ""
    received_by: str = ""
    doc_status: str = DocStatus.ACCEPTED.value
    supply_batches: List[BatchEntry] = Field(default_factory=lambda: [BatchEntry()])
    quality_entries: Dict[str, QualityEntry] = Field(default_factory=dict)
    documents: SupplyDocumentsForm = Field(default_factory=SupplyDocumentsForm)
    vehicle_inspection: VehicleInspectionForm = Field(default_factory=VehicleInspectionForm)
    packaging_quality: PackagingQualityForm = Field(default_factory=PackagingQualityForm)
    supplier_sign_off: SupplierSignOffForm = Field(default_factory=SupplierSignOffForm)
    payment: Optional[PaymentEntry] = None

    @field_validator("warehouse_id", "supplier_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return _as_text(v)


# Wizard / submit responses
class StepValidationResult(BaseModel):
    step: int
    valid: bool
    message: Optional[str] = None
    next_step: int
    warning: Optional[str] = None


class SupplySubmitResult(BaseModel):
    supply_id: int
    doc_no: str
    quality_status: str
    lot_numbers: List[str] = []
    process_lot_run_ids: List[int] = []
    payment_id: Optional[int] = None
    warnings: List[str] = []
    redirect_to: str
    next_doc_number: Optional[str] = None


class DocNumberPreview(BaseModel):
    doc_no: str


# List / detail
class SupplyListRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    doc_no: str
    warehouse_id: int
    warehouse_name: str = ""
    supplier_id: Optional[int] = None
    supplier_name: str = ""
    reference: Optional[str] = None
    received_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    doc_status: str
    quality_status: Optional[str] = None


class SupplySummary(BaseModel):
    total_records: int
    accepted_quantity: Decimal
    pending_quality_quantity: Decimal


class SupplyListPage(BaseModel):
    items: List[SupplyListRow]
    page: int
    page_size: int
    total: int
    total_pages: int
    summary: SupplySummary


class CoaStatusResponse(BaseModel):
    supplier_id: int
    status: str
    expiry_date: Optional[date] = None
    document_id: Optional[int] = None
    document_name: Optional[str] = None
