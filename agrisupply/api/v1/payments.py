"""
Supply payments API endpoints
"""
from decimal import Decimal
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user
from agrisupply.models import UserProfile
from agrisupply.schemas.payment import (
    PaymentCreate, PaymentResponse, ReconciliationStatus, SupplyTotalsPage
)
from agrisupply.services.payments import PaymentService

router = APIRouter()


@router.get("/supplies", response_model=SupplyTotalsPage)
async def list_supply_totals(
    status: Optional[ReconciliationStatus] = None,
    limit: int = Query(500, ge=1, le=500),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Expected, paid and outstanding amounts per supply
    """
    rows = PaymentService(db, current_user).list_supply_totals(status.value if status else None, limit)
    outstanding = sum((max(row["balance"], Decimal(0)) for row in rows), Decimal(0))
    return {"items": rows, "total_outstanding": outstanding}


@router.post("", response_model=PaymentResponse, status_code=http_status.HTTP_201_CREATED)
async def record_payment(
    payment_in: PaymentCreate,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Record a payment against a supply; the amount may not exceed the balance
    """
    return PaymentService(db, current_user).record_payment(
        supply_id=payment_in.supply_id,
        amount=payment_in.amount,
        paid_at=payment_in.paid_at,
        reference=payment_in.reference,
        proof_url=payment_in.proof_url,
        proof_name=payment_in.proof_name,
        proof_type=payment_in.proof_type,
        proof_source=payment_in.proof_source.value if payment_in.proof_source else None,
    )
