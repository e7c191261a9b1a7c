"""
Process Tracking Service
Fixed production pipeline and the lot runs opened for received batches
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import logging

from sqlalchemy.orm import Session

from agrisupply.core.exceptions import BusinessLogicError, NotFoundError
from agrisupply.models import Process, ProductProcess, ProcessLotRun, SupplyBatch
from agrisupply.schemas.supply import ProcessStatus

logger = logging.getLogger(__name__)

PIPELINE_STAGES = [
    {"key": "receiving", "name": "Receiving"},
    {"key": "cleaning", "name": "Cleaning"},
    {"key": "drying", "name": "Drying"},
    {"key": "cooling", "name": "Cooling"},
    {"key": "metal_detection", "name": "Metal Detection"},
    {"key": "packing", "name": "Vacuum Packing"},
    {"key": "allocation", "name": "Allocation"},
]

# Display figures for the process board; stage execution is not tracked live
_MOCK_STAGE_COUNTS = {
    "receiving": 3,
    "cleaning": 2,
    "drying": 1,
    "cooling": 1,
    "metal_detection": 0,
    "packing": 2,
    "allocation": 1,
}


def pipeline_overview() -> List[Dict[str, Any]]:
    """Pipeline stages in order with the lots shown against each"""
    return [
        {
            "position": position,
            "key": stage["key"],
            "name": stage["name"],
            "lots_in_stage": _MOCK_STAGE_COUNTS.get(stage["key"], 0),
        }
        for position, stage in enumerate(PIPELINE_STAGES, start=1)
    ]


class ProcessLotRunService:
    """Opens a production run for a supply batch"""

    def __init__(self, db: Session):
        self.db = db

    def default_process_for_product(self, product_id: int) -> Optional[Process]:
        """
        Process used for new lots of a product

        The product_processes default wins; otherwise the lowest-id process
        whose product_ids lists the product.
        """
        assignment = self.db.query(ProductProcess).filter(
            ProductProcess.product_id == product_id,
            ProductProcess.is_default.is_(True)
        ).first()
        if assignment:
            return assignment.process

        for process in self.db.query(Process).order_by(Process.id).all():
            if product_id in (process.product_ids or []):
                return process
        return None

    def create_for_batch(self, batch_id: int) -> Optional[ProcessLotRun]:
        """
        Open an IN_PROGRESS run for a batch and mark the batch PROCESSING.

        Returns None when the batch already has a run. Flushes only; the
        caller owns the transaction.
        """
        batch = self.db.query(SupplyBatch).filter(SupplyBatch.id == batch_id).first()
        if not batch:
            raise NotFoundError(f"Supply batch {batch_id} not found")

        existing = self.db.query(ProcessLotRun.id).filter(ProcessLotRun.supply_batch_id == batch_id).first()
        if existing:
            return None

        process = self.default_process_for_product(batch.product_id)
        if not process:
            raise BusinessLogicError(f"No process found for product {batch.product_id}")

        lot_run = ProcessLotRun(
            supply_batch_id=batch.id,
            process_id=process.id,
            status="IN_PROGRESS",
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(lot_run)
        batch.process_status = ProcessStatus.PROCESSING.value
        self.db.flush()

        logger.info(f"Opened process lot run {lot_run.id} ({process.code}) for batch {batch.lot_no}")
        return lot_run

    def list_runs(self, status: Optional[str] = None, limit: int = 100) -> List[ProcessLotRun]:
        query = self.db.query(ProcessLotRun)
        if status:
            query = query.filter(ProcessLotRun.status == status)
        return query.order_by(ProcessLotRun.id.desc()).limit(limit).all()
