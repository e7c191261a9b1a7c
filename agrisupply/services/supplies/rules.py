"""
Supply intake business rules

Pure functions shared by the wizard, the persistence layer and the list views.
Quantities are handled as Decimal; form fields arrive as the text the user typed.
"""
from collections import namedtuple
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Tuple
import math
import re

from agrisupply.schemas.supply import BatchEntry, BatchQualityStatus, SupplyQualityStatus

NOT_APPLICABLE_SCORE = 4
PASSING_SCORE = 3
DEFAULT_SCORE = 3

ACCEPTED_EXCEEDS_RECEIVED = "Accepted quantity cannot exceed received quantity."
REJECTED_VARIANCE_REASON = "Rejected during quality evaluation"

# Leading number, the way a browser's parseFloat reads "12kg" or ".5"
_QUANTITY_PATTERN = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")

SettledQuantities = namedtuple("SettledQuantities", ["received", "accepted", "rejected"])


def parse_quantity(value: Any) -> Optional[Decimal]:
    """Read the leading number of a quantity field, None when there is none"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None

    match = _QUANTITY_PATTERN.match(str(value))
    if not match:
        return None
    return Decimal(match.group(1))


def format_quantity(value: Decimal) -> str:
    """Canonical text for a quantity: "80", "0.5", never "80.000" or "1E+2" """
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def sanitise_accepted_quantity_input(value: Any) -> str:
    """
    Strip stray leading zeros from an accepted quantity as it is typed.

    "007" becomes "7"; a bare "0" and anything starting "0." are left alone so
    decimals can still be entered.
    """
    if value is None:
        return ""

    text = str(value).strip()
    if text == "":
        return ""

    if text == "0" or text.startswith("0."):
        return text

    normalised = re.sub(r"^0+(?=\d)", "", text)
    return normalised or "0"


def _rejected_text(quantity: Decimal, accepted: Decimal) -> str:
    remainder = max(quantity - accepted, Decimal(0))
    return "0" if remainder == 0 else format_quantity(remainder)


def apply_batch_change(batch: BatchEntry, field: str, value: Any) -> Tuple[BatchEntry, Optional[str]]:
    """
    Apply one edit to a batch row and reconcile its quantities.

    Accepted is clamped to the received quantity and rejected is re-derived as
    received - accepted. Returns the updated copy and the error to show the
    user, if the edit tried to accept more than was received.
    """
    updated = batch.model_copy()
    incoming = sanitise_accepted_quantity_input(value) if field == "accepted_qty" else (
        "" if value is None else str(value)
    )
    setattr(updated, field, incoming)
    error = None

    if field == "qty":
        quantity = parse_quantity(incoming)
        accepted = parse_quantity(updated.accepted_qty)
        if quantity is not None:
            if accepted is not None and accepted > quantity:
                updated.accepted_qty = format_quantity(quantity)
        else:
            updated.accepted_qty = ""

    quantity = parse_quantity(updated.qty)
    accepted = parse_quantity(updated.accepted_qty)
    has_quantity = quantity is not None and quantity > 0
    has_accepted = accepted is not None and accepted >= 0

    if field in ("qty", "accepted_qty") and has_quantity and has_accepted and accepted > quantity:
        error = ACCEPTED_EXCEEDS_RECEIVED
        updated.accepted_qty = format_quantity(quantity)
        updated.rejected_qty = "0"
    elif has_quantity and has_accepted:
        updated.rejected_qty = _rejected_text(quantity, accepted)
    else:
        updated.rejected_qty = ""

    return updated, error


def derive_missing_quantities(batch: BatchEntry) -> BatchEntry:
    """
    Fill whichever of accepted/rejected is missing from the received quantity.

    Runs every time the batches step is entered; a batch whose values are
    already consistent comes back unchanged.
    """
    quantity = parse_quantity(batch.qty)
    if quantity is None or quantity <= 0:
        return batch

    accepted = parse_quantity(batch.accepted_qty)
    rejected = parse_quantity(batch.rejected_qty)

    if accepted is None and rejected is None:
        return batch.model_copy(update={"accepted_qty": "0", "rejected_qty": format_quantity(quantity)})
    if accepted is None:
        return batch.model_copy(update={"accepted_qty": format_quantity(max(quantity - rejected, Decimal(0)))})
    if rejected is None:
        return batch.model_copy(update={"rejected_qty": format_quantity(max(quantity - accepted, Decimal(0)))})
    return batch


def settle_line_quantities(batch: BatchEntry) -> SettledQuantities:
    """Quantities written to supply_lines / supply_batches on submit"""
    received = parse_quantity(batch.qty) or Decimal(0)
    accepted_raw = parse_quantity(batch.accepted_qty)
    accepted = min(accepted_raw, received) if accepted_raw is not None else Decimal(0)
    rejected = max(received - accepted, Decimal(0))
    return SettledQuantities(received, accepted, rejected)


# Quality scores

def is_not_applicable(score: Any) -> bool:
    return score is None or score == "" or score == NOT_APPLICABLE_SCORE or score == str(NOT_APPLICABLE_SCORE)


def _numeric_score(score: Any) -> Optional[Decimal]:
    try:
        number = Decimal(str(score).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def is_valid_score(score: Any) -> bool:
    """N/A, or a number between 1 and 3"""
    if is_not_applicable(score):
        return True
    number = _numeric_score(score)
    return number is not None and 1 <= number <= 3


def normalise_score(score: Any) -> int:
    """Stored score: N/A becomes 4"""
    if is_not_applicable(score):
        return NOT_APPLICABLE_SCORE
    return int(_numeric_score(score))


def _entry_score(entry: Any) -> Any:
    if isinstance(entry, Mapping):
        return entry.get("score")
    return getattr(entry, "score", None)


def _scored_values(entries: Any):
    values = entries.values() if isinstance(entries, Mapping) else entries
    for entry in values:
        score = _entry_score(entry)
        if is_not_applicable(score):
            continue
        number = _numeric_score(score)
        if number is not None:
            yield number


def calculate_average_score(entries: Any) -> Optional[Decimal]:
    """Mean of the scored entries, N/A excluded, rounded to 2 places"""
    scores = list(_scored_values(entries))
    if not scores:
        return None
    average = sum(scores) / len(scores)
    return average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def has_quality_issues(entries: Any) -> bool:
    """Any scored parameter below 3"""
    return any(score < PASSING_SCORE for score in _scored_values(entries))


def has_rejected_batches(batches: Iterable[BatchEntry]) -> bool:
    return any(settle_line_quantities(batch).rejected > 0 for batch in batches)


def derive_quality_status(entries: Any, batches: Iterable[BatchEntry]) -> str:
    """Supply quality status: FAILED on a low score or any rejection"""
    if has_quality_issues(entries) or has_rejected_batches(batches):
        return SupplyQualityStatus.FAILED.value
    return SupplyQualityStatus.PASSED.value


def quality_check_status(entries: Any, batches: Iterable[BatchEntry]) -> str:
    return "PASS" if derive_quality_status(entries, batches) == SupplyQualityStatus.PASSED.value else "FAIL"


def batch_quality_status(received: Decimal, accepted: Decimal) -> str:
    rejected = max(received - accepted, Decimal(0))
    if rejected == 0:
        return BatchQualityStatus.PASSED.value
    if accepted == 0:
        return BatchQualityStatus.FAILED.value
    return BatchQualityStatus.HOLD.value


# Numbering

def generate_lot_number(supply_id: int, index: int, prefix: str = "LOT") -> str:
    """Lot number for the batch at zero-based position `index`"""
    return f"{prefix}-{supply_id}-{index + 1:03d}"


def format_doc_number(day: date, sequence: int, prefix: str = "SUP") -> str:
    return f"{prefix}-{day:%Y%m%d}-{sequence:03d}"


def doc_number_sequence(doc_no: str, day: date, prefix: str = "SUP") -> Optional[int]:
    """Sequence part of a document number issued on `day`, else None"""
    match = re.match(rf"^{re.escape(prefix)}-(\d{{8}})-(\d+)$", doc_no or "")
    if not match or match.group(1) != f"{day:%Y%m%d}":
        return None
    return int(match.group(2))


def compute_next_doc_number(existing_doc_numbers: Iterable[str], today: date, prefix: str = "SUP") -> str:
    """Next document number for today: highest sequence issued today plus one"""
    sequences = [
        seq for seq in (doc_number_sequence(doc_no, today, prefix) for doc_no in existing_doc_numbers)
        if seq is not None
    ]
    return format_doc_number(today, max(sequences, default=0) + 1, prefix)
