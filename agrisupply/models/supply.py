"""
Supply Intake Models
One Supply row per inbound delivery plus the child tables captured by the intake wizard
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, Date, DateTime, Numeric, Text,
    ForeignKey, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agrisupply.core.database import Base


class Supply(Base):
    """
    Inbound supply document

    doc_no follows SUP-YYYYMMDD-NNN and is unique; quality_status is derived
    from the quality scores and batch rejections at submit time.
    """
    __tablename__ = "supplies"
    __table_args__ = (
        CheckConstraint("doc_status IN ('ACCEPTED', 'REJECTED')", name="doc_status"),
        CheckConstraint("quality_status IN ('PASSED', 'FAILED', 'PENDING')", name="quality_status"),
        Index("ix_supplies_received_at", "received_at"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)
    doc_no = Column(String(20), unique=True, nullable=False, doc="Document number")

    # References
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"))
    received_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))

    # Receiving details
    reference = Column(String(60))
    received_at = Column(DateTime(timezone=True))
    expected_at = Column(DateTime(timezone=True))
    transport_reference = Column(String(60))
    pallets_received = Column(Integer)
    notes = Column(Text)

    # Status
    doc_status = Column(String(10), nullable=False, default="ACCEPTED")
    quality_status = Column(String(10), nullable=False, default="PENDING")

    # Audit
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    # Relationships
    lines = relationship("SupplyLine", back_populates="supply", cascade="all, delete-orphan", order_by="SupplyLine.id")
    batches = relationship("SupplyBatch", back_populates="supply", cascade="all, delete-orphan", order_by="SupplyBatch.id")
    quality_checks = relationship("SupplyQualityCheck", back_populates="supply", cascade="all, delete-orphan", order_by="SupplyQualityCheck.id")
    documents = relationship("SupplyDocument", back_populates="supply", cascade="all, delete-orphan", order_by="SupplyDocument.id")
    vehicle_inspection = relationship("SupplyVehicleInspection", uselist=False, cascade="all, delete-orphan")
    packaging_check = relationship("SupplyPackagingQualityCheck", uselist=False, cascade="all, delete-orphan")
    sign_off = relationship("SupplySupplierSignOff", uselist=False, cascade="all, delete-orphan")
    payments = relationship("SupplyPayment", back_populates="supply", cascade="all, delete-orphan", order_by="SupplyPayment.paid_at.desc()")

    warehouse = relationship("Warehouse")
    supplier = relationship("Supplier")
    receiver = relationship("UserProfile")

    def __repr__(self):
        return f"<Supply(doc_no='{self.doc_no}', quality_status='{self.quality_status}')>"


class SupplyLine(Base):
    """Ordered/received/accepted/rejected quantities for one batch row"""
    __tablename__ = "supply_lines"
    __table_args__ = (
        CheckConstraint("rejected_qty >= 0", name="rejected_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"))

    ordered_qty = Column(Numeric(15, 3), default=0)
    received_qty = Column(Numeric(15, 3), default=0)
    accepted_qty = Column(Numeric(15, 3), default=0)
    rejected_qty = Column(Numeric(15, 3), default=0)
    unit_price = Column(Numeric(15, 2))
    variance_reason = Column(String(200))

    supply = relationship("Supply", back_populates="lines")
    product = relationship("Product")
    unit = relationship("Unit")


class SupplyBatch(Base):
    """Traceable lot created 1:1 with a supply line"""
    __tablename__ = "supply_batches"
    __table_args__ = (
        CheckConstraint("quality_status IN ('PASSED', 'FAILED', 'HOLD', 'PENDING')", name="quality_status"),
        CheckConstraint("process_status IN ('UNPROCESSED', 'PROCESSING', 'PROCESSED')", name="process_status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, index=True)
    supply_line_id = Column(Integer, ForeignKey("supply_lines.id", ondelete="SET NULL"))
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"))

    lot_no = Column(String(30), unique=True, nullable=False, doc="LOT-{supply_id}-{seq}")
    received_qty = Column(Numeric(15, 3), default=0)
    accepted_qty = Column(Numeric(15, 3), default=0)
    rejected_qty = Column(Numeric(15, 3), default=0)
    current_qty = Column(Numeric(15, 3), default=0)

    quality_status = Column(String(10), nullable=False, default="PENDING")
    process_status = Column(String(15), nullable=False, default="UNPROCESSED")
    expiry_date = Column(Date)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    supply = relationship("Supply", back_populates="batches")
    line = relationship("SupplyLine")
    product = relationship("Product")


class SupplyQualityCheck(Base):
    """Receiving inspection header; the latest by id is the one edited"""
    __tablename__ = "supply_quality_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, index=True)
    check_name = Column(String(120))
    status = Column(String(10), doc="PASS or FAIL")
    result = Column(String(10))
    overall_score = Column(Numeric(4, 2))
    performed_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    performed_at = Column(DateTime(timezone=True))
    evaluated_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    evaluated_at = Column(DateTime(timezone=True))

    supply = relationship("Supply", back_populates="quality_checks")
    items = relationship("SupplyQualityCheckItem", back_populates="quality_check",
                         cascade="all, delete-orphan", order_by="SupplyQualityCheckItem.id")


class SupplyQualityCheckItem(Base):
    """Score for one quality parameter; 4 stands for N/A"""
    __tablename__ = "supply_quality_check_items"
    __table_args__ = (
        CheckConstraint("score BETWEEN 1 AND 4", name="score_range"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    quality_check_id = Column(Integer, ForeignKey("supply_quality_checks.id", ondelete="CASCADE"), nullable=False, index=True)
    parameter_id = Column(Integer, ForeignKey("quality_parameters.id"), nullable=False)
    score = Column(Integer, nullable=False)
    remarks = Column(Text)
    results = Column(Text)

    quality_check = relationship("SupplyQualityCheck", back_populates="items")
    parameter = relationship("QualityParameter")


class SupplyDocument(Base):
    """One captured document field (invoice number, batch number, dates...)"""
    __tablename__ = "supply_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type_code = Column(String(30), nullable=False)
    value = Column(String(200))
    date_value = Column(Date)
    boolean_value = Column(Boolean)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"))

    supply = relationship("Supply", back_populates="documents")
    document = relationship("Document")


class SupplyVehicleInspection(Base):
    """Vehicle checklist, at most one per supply"""
    __tablename__ = "supply_vehicle_inspections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, unique=True)
    vehicle_clean = Column(String(3), nullable=False)
    no_foreign_objects = Column(String(3), nullable=False)
    no_pest_infestation = Column(String(3), nullable=False)
    inspected_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    remarks = Column(Text)
    inspected_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class SupplyPackagingQualityCheck(Base):
    """Packaging checklist header, at most one per supply"""
    __tablename__ = "supply_packaging_quality_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, unique=True)
    checked_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    remarks = Column(Text)
    checked_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    items = relationship("SupplyPackagingQualityCheckItem", cascade="all, delete-orphan",
                         order_by="SupplyPackagingQualityCheckItem.id")


class SupplyPackagingQualityCheckItem(Base):
    __tablename__ = "supply_packaging_quality_check_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    packaging_check_id = Column(Integer, ForeignKey("supply_packaging_quality_checks.id", ondelete="CASCADE"),
                                nullable=False, index=True)
    parameter_id = Column(Integer, ForeignKey("packaging_quality_parameters.id"), nullable=False)
    value = Column(String(10))
    numeric_value = Column(Numeric(15, 3))

    parameter = relationship("PackagingQualityParameter")


class SupplySupplierSignOff(Base):
    """Supplier acknowledgement of the delivery, at most one per supply"""
    __tablename__ = "supply_supplier_sign_offs"
    __table_args__ = (
        CheckConstraint("signature_type IN ('E_SIGNATURE', 'UPLOADED_DOCUMENT')", name="signature_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, unique=True)
    signature_type = Column(String(20), nullable=False)
    signature_data = Column(Text, doc="Captured e-signature, data URL")
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"))
    signed_by_name = Column(String(120), nullable=False)
    signed_by_user_id = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    remarks = Column(Text)
    signed_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    document = relationship("Document")


class SupplyPayment(Base):
    """Payment made against a supply"""
    __tablename__ = "supply_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint(
            "proof_source IS NULL OR proof_source IN ('URL', 'FILE_PATH', 'STORAGE', 'MANUAL')",
            name="proof_source"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    reference = Column(String(100))
    proof_storage_path = Column(String(500))
    proof_name = Column(String(255))
    proof_type = Column(String(100))
    proof_source = Column(String(10))
    recorded_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    supply = relationship("Supply", back_populates="payments")


class SupplyDocSequence(Base):
    """Per-day counter behind SUP-YYYYMMDD-NNN document numbers"""
    __tablename__ = "supply_doc_sequences"
    __table_args__ = (
        UniqueConstraint("doc_date", name="uq_supply_doc_sequences_doc_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    doc_date = Column(Date, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
