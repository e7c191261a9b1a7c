"""
Supply intake wizard

Seven linear steps over a single SupplyForm. Validation is a pure function of
the form and the configured quality parameters, so the same rules gate the
"Next" button and the server-side submit.
"""
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Tuple
import logging

from agrisupply.core.exceptions import ValidationError
from agrisupply.schemas.supply import (
    BatchEntry, QualityEntry, SupplyForm, DocStatus, SignatureType
)
from agrisupply.services.supplies import rules

logger = logging.getLogger(__name__)

STEPS = [
    "Basic information",
    "Supply documents",
    "Vehicle inspections",
    "Packaging quality parameters",
    "Quality evaluation",
    "Supply batches & submit",
    "Supplier sign-off",
]
LAST_STEP = len(STEPS) - 1
BATCHES_STEP = 5
STATUS_OPTIONS = [DocStatus.ACCEPTED.value, DocStatus.REJECTED.value]

NO_QUALITY_PARAMETERS_WARNING = (
    "No quality parameters found in database. Please configure quality parameters in settings."
)


def _attr(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def to_local_datetime_input(value: Optional[datetime] = None) -> str:
    """Value for a datetime-local field: 2024-05-01T10:00"""
    return (value or datetime.now()).strftime("%Y-%m-%dT%H:%M")


def _validate_batches(form: SupplyForm) -> Optional[str]:
    if not form.supply_batches:
        return "Add at least one batch to continue."

    for batch in form.supply_batches:
        quantity = rules.parse_quantity(batch.qty)
        accepted = rules.parse_quantity(batch.accepted_qty)

        if not batch.product_id or not batch.unit_id or not batch.qty:
            return "Complete all batch details before submitting."
        if quantity is None or quantity <= 0:
            return "Received quantity must be greater than zero."
        if accepted is None or accepted < 0:
            return "Accepted quantity cannot be negative."
        if accepted > quantity:
            return rules.ACCEPTED_EXCEEDS_RECEIVED

    if form.doc_status not in STATUS_OPTIONS:
        return "Select a supply status before submitting."
    return None


def validate_step(form: SupplyForm, step: int, quality_parameters: Iterable[Any] = ()) -> Optional[str]:
    """
    Check the fields one step requires.

    Returns:
        The message to show the user, or None when the step is complete
    """
    if step == 0:
        if not form.warehouse_id or not form.supplier_id or not form.received_at:
            return "Complete all required fields before continuing."

    elif step == 1:
        documents = form.documents
        if not documents.invoice_number or not documents.driver_license_name or not documents.batch_number:
            return "Complete all required document fields before continuing."

    elif step == 2:
        if not form.vehicle_inspection.is_complete():
            return "Complete all vehicle inspection fields before continuing."

    elif step == 3:
        if not form.packaging_quality.is_complete():
            return "Complete all packaging quality parameters before continuing."

    elif step == 4:
        for parameter in quality_parameters:
            entry = form.quality_entries.get(_attr(parameter, "code"))
            score = entry.score if entry is not None else None
            if not rules.is_valid_score(score):
                return f"Provide a valid score for {_attr(parameter, 'name')} before continuing."

    elif step == 5:
        return _validate_batches(form)

    elif step == 6:
        sign_off = form.supplier_sign_off
        if sign_off.signature_type not in (SignatureType.E_SIGNATURE.value, SignatureType.UPLOADED_DOCUMENT.value):
            return "Select a signature type before submitting."
        if not sign_off.signed_by_name:
            return "Enter the signer name before submitting."
        if sign_off.signature_type == SignatureType.E_SIGNATURE.value and not sign_off.signature_data:
            return "Please provide an e-signature before submitting."
        if sign_off.signature_type == SignatureType.UPLOADED_DOCUMENT.value and not sign_off.document_file_name:
            return "Please upload a signature document before submitting."

    return None


def validate_for_submit(form: SupplyForm, quality_parameters: Iterable[Any] = ()) -> Tuple[Optional[int], Optional[str]]:
    """
    Re-validate every step before any write.

    Returns:
        (first failing step, message), or (None, None) when the form is complete
    """
    quality_parameters = list(quality_parameters)
    for step in range(len(STEPS)):
        message = validate_step(form, step, quality_parameters)
        if message:
            return step, message
    return None, None


class SupplyWizard:
    """
    Form state plus the current step of one intake session.

    Used by the API to replay a step transition and by the submit endpoint to
    find the first incomplete step.
    """

    def __init__(
        self,
        form: Optional[SupplyForm] = None,
        quality_parameters: Optional[Iterable[Any]] = None,
        doc_number_provider: Optional[Callable[[], str]] = None,
        receiver_name: str = "",
        current_step: int = 0,
    ):
        self.quality_parameters: List[Any] = list(quality_parameters or [])
        self.doc_number_provider = doc_number_provider
        self.receiver_name = receiver_name
        self.current_step = max(0, min(current_step, LAST_STEP))
        self.last_error: Optional[str] = None
        self.warnings: List[str] = []

        if form is None:
            self.reset()
        else:
            self.form = form
            self.sync_quality_parameters(self.quality_parameters)

    # Navigation

    @property
    def is_last_step(self) -> bool:
        return self.current_step == LAST_STEP

    @property
    def primary_action_label(self) -> str:
        return "Submit Supply" if self.is_last_step else "Next"

    @property
    def step_title(self) -> str:
        return STEPS[self.current_step]

    def validate_step(self, step: Optional[int] = None) -> bool:
        step = self.current_step if step is None else step
        self.last_error = validate_step(self.form, step, self.quality_parameters)
        return self.last_error is None

    def enter_step(self, step: int) -> None:
        self.current_step = max(0, min(step, LAST_STEP))
        if self.current_step == BATCHES_STEP:
            self.form.supply_batches = [
                rules.derive_missing_quantities(batch) for batch in self.form.supply_batches
            ]

    def advance(self) -> bool:
        """Move to the next step if the current one is complete"""
        if self.is_last_step:
            return False
        if not self.validate_step():
            return False
        self.enter_step(self.current_step + 1)
        return True

    def back(self) -> None:
        self.enter_step(self.current_step - 1)

    def validate_for_submit(self) -> bool:
        """On failure the wizard jumps to the first incomplete step"""
        step, message = validate_for_submit(self.form, self.quality_parameters)
        self.last_error = message
        if step is not None:
            self.current_step = step
            return False
        return True

    def require_valid(self) -> None:
        if not self.validate_for_submit():
            raise ValidationError(self.last_error, step=self.current_step)

    # Batches

    def add_batch(self) -> None:
        self.form.supply_batches.append(BatchEntry())

    def remove_batch(self, index: int) -> None:
        self.form.supply_batches = [
            batch for position, batch in enumerate(self.form.supply_batches) if position != index
        ]

    def update_batch(self, index: int, field: str, value: Any) -> Optional[str]:
        if index < 0 or index >= len(self.form.supply_batches):
            return None
        updated, error = rules.apply_batch_change(self.form.supply_batches[index], field, value)
        self.form.supply_batches[index] = updated
        self.last_error = error
        return error

    # Quality evaluation

    def set_quality_entry(self, code: str, score: Any = None, remarks: str = "", results: str = "") -> None:
        self.form.quality_entries[code] = QualityEntry(score=score, remarks=remarks, results=results)

    def sync_quality_parameters(self, quality_parameters: Iterable[Any]) -> None:
        """Default entries for new parameters, stale codes dropped"""
        self.quality_parameters = list(quality_parameters)
        entries = {}
        for parameter in self.quality_parameters:
            code = _attr(parameter, "code")
            entries[code] = self.form.quality_entries.get(code) or QualityEntry(score=rules.DEFAULT_SCORE)
        self.form.quality_entries = entries

        self.warnings = [] if self.quality_parameters else [NO_QUALITY_PARAMETERS_WARNING]
        if not self.quality_parameters:
            logger.warning(NO_QUALITY_PARAMETERS_WARNING)

    @property
    def average_score(self):
        return rules.calculate_average_score(self.form.quality_entries)

    # Lifecycle

    def reset(self) -> None:
        """Fresh form for the next supply, receiver and doc number pre-filled"""
        doc_no = self.doc_number_provider() if self.doc_number_provider else ""
        self.form = SupplyForm(
            doc_no=doc_no,
            received_at=to_local_datetime_input(),
            received_by=self.receiver_name,
            doc_status=STATUS_OPTIONS[0],
        )
        self.sync_quality_parameters(self.quality_parameters)
        self.current_step = 0
        self.last_error = None
