"""
Supply Payments Service
Expected value, payments and reconciliation status per supply
"""

from typing import Dict, Iterable, List, Optional
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
import logging

from sqlalchemy.orm import Session

from agrisupply.core.exceptions import NotFoundError, ValidationError
from agrisupply.core.security import log_user_action
from agrisupply.models import Supply, SupplyLine, SupplyPayment, UserProfile

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS, rounding=ROUND_HALF_UP)


def expected_total(lines: Iterable[SupplyLine]) -> Decimal:
    """Accepted quantity times unit price; lines without a price count as zero"""
    total = sum(
        (Decimal(str(line.accepted_qty or 0)) * Decimal(str(line.unit_price)) for line in lines
         if line.unit_price is not None),
        Decimal(0)
    )
    return _money(total)


def reconciliation_status(paid: Decimal, balance: Decimal) -> str:
    if paid <= 0:
        return "UNRECONCILED"
    if _money(balance) <= 0:
        return "FULLY_PAID"
    return "PARTIAL"


class PaymentService:
    """Payments recorded against supplies"""

    def __init__(self, db: Session, current_user: Optional[UserProfile] = None):
        self.db = db
        self.current_user = current_user

    def _totals_for(self, supply: Supply) -> Dict:
        expected = expected_total(supply.lines)
        paid = _money(sum((Decimal(str(p.amount)) for p in supply.payments), Decimal(0)))
        balance = expected - paid
        return {
            "supply_id": supply.id,
            "doc_no": supply.doc_no,
            "supplier_name": supply.supplier.name if supply.supplier else "",
            "total_expected": expected,
            "total_paid": paid,
            "balance": balance,
            "status": reconciliation_status(paid, balance),
        }

    def supply_totals(self, supply_id: int) -> Dict:
        supply = self.db.query(Supply).filter(Supply.id == supply_id).first()
        if not supply:
            raise NotFoundError(f"Supply {supply_id} not found")
        return self._totals_for(supply)

    def list_supply_totals(self, status: Optional[str] = None, limit: int = 500) -> List[Dict]:
        supplies = self.db.query(Supply).order_by(
            Supply.received_at.desc().nulls_last()
        ).limit(limit).all()

        rows = [self._totals_for(supply) for supply in supplies]
        if status:
            rows = [row for row in rows if row["status"] == status]
        return rows

    def record_payment(
        self,
        supply_id: int,
        amount,
        paid_at: Optional[datetime] = None,
        reference: Optional[str] = None,
        proof_url: Optional[str] = None,
        proof_name: Optional[str] = None,
        proof_type: Optional[str] = None,
        proof_source: Optional[str] = None,
        commit: bool = True,
    ) -> SupplyPayment:
        """
        Record a payment against a supply

        Raises:
            ValidationError: amount not positive or above the outstanding balance
        """
        if not supply_id:
            raise ValidationError("Select a supply.")

        try:
            amount = _money(amount)
        except ArithmeticError:
            raise ValidationError("Enter a valid amount.")
        if amount <= 0:
            raise ValidationError("Enter a valid amount.")

        supply = self.db.query(Supply).filter(Supply.id == supply_id).first()
        if not supply:
            raise NotFoundError(f"Supply {supply_id} not found")

        outstanding = max(Decimal(0), self._totals_for(supply)["balance"])
        if amount > outstanding:
            raise ValidationError(f"Amount cannot exceed the outstanding balance ({outstanding:,.2f}).")

        proof_url = (proof_url or "").strip() or None
        payment = SupplyPayment(
            supply=supply,
            amount=amount,
            paid_at=paid_at or datetime.now(timezone.utc),
            reference=(reference or "").strip() or None,
            proof_storage_path=proof_url,
            proof_name=(proof_name or "").strip() or None,
            proof_type=(proof_type or "").strip() or None,
            proof_source=proof_source or ("MANUAL" if proof_url else None),
            recorded_by=self.current_user.id if self.current_user else None,
        )
        self.db.add(payment)
        self.db.flush()

        log_user_action(
            db=self.db,
            user=self.current_user,
            action="RECORD_PAYMENT",
            table="supply_payments",
            key=str(payment.id),
            new_values={"supply_id": supply_id, "amount": amount, "reference": payment.reference},
            commit=False,
        )
        if commit:
            self.db.commit()
            self.db.refresh(payment)

        logger.info(f"Payment {payment.id} of {amount} recorded against supply {supply_id}")
        return payment
