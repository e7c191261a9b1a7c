"""Supply payment schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum


class ReconciliationStatus(str, Enum):
    UNRECONCILED = "UNRECONCILED"
    PARTIAL = "PARTIAL"
    FULLY_PAID = "FULLY_PAID"


class ProofSource(str, Enum):
    URL = "URL"
    FILE_PATH = "FILE_PATH"
    STORAGE = "STORAGE"
    MANUAL = "MANUAL"


class PaymentCreate(BaseModel):
    supply_id: int
    amount: Decimal = Field(..., description="Amount paid")
    paid_at: Optional[datetime] = None
    reference: Optional[str] = Field(None, max_length=100)
    proof_url: Optional[str] = None
    proof_name: Optional[str] = None
    proof_type: Optional[str] = None
    proof_source: Optional[ProofSource] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    supply_id: int
    amount: Decimal
    paid_at: datetime
    reference: Optional[str] = None
    proof_storage_path: Optional[str] = None
    proof_name: Optional[str] = None
    proof_type: Optional[str] = None
    proof_source: Optional[str] = None
    recorded_by: Optional[int] = None


class SupplyTotals(BaseModel):
    supply_id: int
    doc_no: str
    supplier_name: str = ""
    total_expected: Decimal
    total_paid: Decimal
    balance: Decimal
    status: ReconciliationStatus


class SupplyTotalsPage(BaseModel):
    items: List[SupplyTotals]
    total_outstanding: Decimal
