"""
AgriSupply Pydantic Schemas
Request/Response models for the supply intake API
"""

from .auth import Token, UserProfileCreate, SessionUser, SessionResponse
from .reference import ReferenceDataResponse
from .supply import (
    DocStatus, SupplyQualityStatus, BatchQualityStatus, ProcessStatus, SignatureType,
    BatchEntry, QualityEntry, SupplyDocumentsForm, VehicleInspectionForm,
    PackagingQualityForm, SupplierSignOffForm, PaymentEntry, SupplyForm,
    StepValidationResult, SupplySubmitResult, DocNumberPreview,
    SupplyListRow, SupplySummary, SupplyListPage, CoaStatusResponse
)
from .payment import (
    ReconciliationStatus, ProofSource, PaymentCreate, PaymentResponse,
    SupplyTotals, SupplyTotalsPage
)
from .process import LotRunStatus, PipelineStage, ProcessLotRunResponse
