"""
Production process models
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agrisupply.core.database import Base


class Process(Base):
    """Process definition applicable to a set of products"""
    __tablename__ = "processes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(30), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(255))
    product_ids = Column(JSON, nullable=False, default=list, doc="Products this process applies to")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class ProductProcess(Base):
    """Product to process assignment; is_default marks the one used for new lots"""
    __tablename__ = "product_processes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    process_id = Column(Integer, ForeignKey("processes.id", ondelete="CASCADE"), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    process = relationship("Process")


class ProcessLotRun(Base):
    """Production run for one supply batch"""
    __tablename__ = "process_lot_runs"
    __table_args__ = (
        CheckConstraint("status IN ('IN_PROGRESS', 'COMPLETED')", name="status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_batch_id = Column(Integer, ForeignKey("supply_batches.id", ondelete="CASCADE"), nullable=False, unique=True)
    process_id = Column(Integer, ForeignKey("processes.id"), nullable=False)
    status = Column(String(15), nullable=False, default="IN_PROGRESS")
    started_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    completed_at = Column(DateTime(timezone=True))

    batch = relationship("SupplyBatch")
    process = relationship("Process")
