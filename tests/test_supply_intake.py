"""
Tests for Supply Intake persistence
"""

import pytest
import warnings
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import SAWarning

from agrisupply.core.config import settings
from agrisupply.core.exceptions import BusinessLogicError, NotFoundError, StorageError, ValidationError
from agrisupply.models import (
    AuditLog, Document, ProcessLotRun, Supply, SupplyBatch, SupplyDocument, SupplyLine,
    SupplyPackagingQualityCheckItem, SupplyPayment, SupplyQualityCheck, SupplySupplierSignOff,
    SupplyVehicleInspection
)
from agrisupply.services.storage import ObjectStorage, UploadedFile
from agrisupply.services.supplies.intake import SupplyIntakeService


def today_prefix() -> str:
    return f"SUP-{date.today():%Y%m%d}"


class FailingSignatureStorage(ObjectStorage):
    """Bucket that refuses signature objects"""

    def upload(self, path, content, overwrite=False):
        if "/signatures/" in path:
            raise StorageError("Bucket unavailable")
        return super().upload(path, content, overwrite)


class TestCreateSupply:
    """Test capturing a new supply"""

    def test_create_supply(self, db_session, storage, test_user, reference_data, supply_form):
        """Test every section of the wizard is written"""
        service = SupplyIntakeService(db_session, test_user, storage)

        result = service.create_supply(supply_form())

        supply = db_session.query(Supply).filter(Supply.id == result["supply_id"]).one()
        assert result["doc_no"] == f"{today_prefix()}-001"
        assert supply.doc_no == result["doc_no"]
        assert supply.quality_status == "PASSED"
        assert supply.received_by == test_user.id
        assert supply.warehouse_id == reference_data["warehouse"].id
        assert result["redirect_to"] == "/supplies"
        assert result["next_doc_number"] == f"{today_prefix()}-002"
        assert result["warnings"] == []

        line = db_session.query(SupplyLine).filter(SupplyLine.supply_id == supply.id).one()
        batch = db_session.query(SupplyBatch).filter(SupplyBatch.supply_id == supply.id).one()
        assert line.accepted_qty == Decimal("100")
        assert line.unit_price == Decimal("2.50")
        assert line.variance_reason is None
        assert batch.supply_line_id == line.id
        assert batch.lot_no == f"LOT-{supply.id}-001"
        assert result["lot_numbers"] == [batch.lot_no]
        assert batch.current_qty == Decimal("100")
        assert batch.quality_status == "PASSED"

        check = db_session.query(SupplyQualityCheck).filter(SupplyQualityCheck.supply_id == supply.id).one()
        assert check.status == "PASS"
        assert check.overall_score == Decimal("3.00")
        assert len(check.items) == 2

        codes = {row.document_type_code for row in
                 db_session.query(SupplyDocument).filter(SupplyDocument.supply_id == supply.id)}
        assert codes == {"INVOICE", "DRIVER_LICENSE", "BATCH_NUMBER", "PRODUCTION_DATE", "EXPIRY_DATE", "COA"}

        inspection = db_session.query(SupplyVehicleInspection).filter(
            SupplyVehicleInspection.supply_id == supply.id
        ).one()
        assert inspection.inspected_by == test_user.id

        items = db_session.query(SupplyPackagingQualityCheckItem).all()
        assert len(items) == 5
        numeric = [item for item in items if item.parameter.code == "SPECIFIED_QUANTITY"][0]
        assert numeric.numeric_value == Decimal("50")
        assert numeric.value is None

        sign_off = db_session.query(SupplySupplierSignOff).filter(
            SupplySupplierSignOff.supply_id == supply.id
        ).one()
        assert sign_off.signature_type == "E_SIGNATURE"
        assert sign_off.signature_data.startswith("data:image/png")
        assert sign_off.document_id is None

        audit = db_session.query(AuditLog).filter(AuditLog.audit_action == "CREATE_SUPPLY").one()
        assert audit.audit_user == test_user.email
        assert audit.audit_key == supply.doc_no

    def test_passed_batch_opens_process_lot_run(self, db_session, storage, reference_data, supply_form):
        """Test a passed batch gets a run against the default process"""
        result = SupplyIntakeService(db_session, storage=storage).create_supply(supply_form())

        run = db_session.query(ProcessLotRun).one()
        batch = db_session.query(SupplyBatch).one()
        assert result["process_lot_run_ids"] == [run.id]
        assert run.process_id == reference_data["process"].id
        assert run.status == "IN_PROGRESS"
        assert batch.process_status == "PROCESSING"

    def test_missing_process_only_warns(self, db_session, storage, reference_data, supply_form):
        """Test a product without a process keeps the supply and reports a warning"""
        form = supply_form(supply_batches=[
            {"product_id": str(reference_data["maize"].id), "unit_id": str(reference_data["kg"].id),
             "qty": "100", "accepted_qty": "100"},
            {"product_id": str(reference_data["beans"].id), "unit_id": str(reference_data["kg"].id),
             "qty": "40", "accepted_qty": "40"},
        ])

        result = SupplyIntakeService(db_session, storage=storage).create_supply(form)

        assert len(result["lot_numbers"]) == 2
        assert len(result["process_lot_run_ids"]) == 1
        assert len(result["warnings"]) == 1
        assert result["lot_numbers"][1] in result["warnings"][0]
        assert "No process found" in result["warnings"][0]
        assert db_session.query(Supply).count() == 1
        beans_batch = db_session.query(SupplyBatch).filter(
            SupplyBatch.product_id == reference_data["beans"].id
        ).one()
        assert beans_batch.process_status == "UNPROCESSED"

    def test_rejection_fails_quality(self, db_session, storage, reference_data, supply_form):
        """Test partial rejection marks the supply FAILED and the batch HOLD"""
        form = supply_form(supply_batches=[
            {"product_id": str(reference_data["maize"].id), "unit_id": str(reference_data["kg"].id),
             "qty": "100", "accepted_qty": "60"},
        ])

        result = SupplyIntakeService(db_session, storage=storage).create_supply(form)

        line = db_session.query(SupplyLine).one()
        batch = db_session.query(SupplyBatch).one()
        assert result["quality_status"] == "FAILED"
        assert line.rejected_qty == Decimal("40")
        assert line.variance_reason == "Rejected during quality evaluation"
        assert batch.quality_status == "HOLD"
        assert batch.current_qty == Decimal("60")
        assert result["process_lot_run_ids"] == []

    def test_incomplete_form_writes_nothing(self, db_session, storage, reference_data, supply_form):
        """Test validation happens before any write"""
        form = supply_form(vehicle_inspection={"vehicle_clean": "YES"})

        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(form)

        assert exc_info.value.step == 2
        assert db_session.query(Supply).count() == 0

    def test_invalid_received_at(self, db_session, storage, reference_data, supply_form):
        """Test an unparseable received date is rejected on the first step"""
        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(supply_form(received_at="yesterday"))

        assert exc_info.value.step == 0

    def test_uploads_are_recorded(self, db_session, storage, reference_data, supply_form):
        """Test invoice and signature files land in storage and documents"""
        form = supply_form(supplier_sign_off={
            "signature_type": "UPLOADED_DOCUMENT",
            "signed_by_name": "Sipho Dlamini",
        })
        files = {
            "invoice_file": UploadedFile("invoice.pdf", b"%PDF-1.4", "application/pdf"),
            "signature_file": UploadedFile("signed.png", b"\x89PNG", "image/png"),
        }

        result = SupplyIntakeService(db_session, storage=storage).create_supply(form, files)

        documents = db_session.query(Document).order_by(Document.id).all()
        assert [doc.document_type_code for doc in documents] == ["INVOICE", "SIGNATURE"]
        for doc in documents:
            assert doc.owner_type == "supply"
            assert doc.owner_id == result["supply_id"]
            assert storage.exists(doc.storage_path)
        assert documents[0].storage_path.startswith(f"supplies/{result['supply_id']}/documents/invoice_")
        assert documents[1].storage_path.startswith(f"supplies/{result['supply_id']}/signatures/signature_")

        invoice = db_session.query(SupplyDocument).filter(SupplyDocument.document_type_code == "INVOICE").one()
        sign_off = db_session.query(SupplySupplierSignOff).one()
        assert invoice.document_id == documents[0].id
        assert sign_off.document_id == documents[1].id
        assert sign_off.signature_data is None

    def test_failed_upload_rolls_back(self, db_session, tmp_path, reference_data, supply_form):
        """Test a failing signature upload removes the invoice object and writes no rows"""
        storage = FailingSignatureStorage(root=tmp_path / "failing", bucket="documents")
        form = supply_form(supplier_sign_off={
            "signature_type": "UPLOADED_DOCUMENT",
            "signed_by_name": "Sipho Dlamini",
        })
        files = {
            "invoice_file": UploadedFile("invoice.pdf", b"%PDF-1.4", "application/pdf"),
            "signature_file": UploadedFile("signed.png", b"\x89PNG", "image/png"),
        }

        with pytest.raises(StorageError):
            SupplyIntakeService(db_session, storage=storage).create_supply(form, files)

        assert db_session.query(Supply).count() == 0
        assert db_session.query(Document).count() == 0
        assert [p for p in storage.bucket_directory.rglob("*") if p.is_file()] == []

    def test_unknown_warehouse_rejected(self, db_session, storage, reference_data, supply_form):
        """Test a warehouse id with no row is rejected on the first step"""
        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(supply_form(warehouse_id="999"))

        assert exc_info.value.step == 0
        assert exc_info.value.message == "The selected warehouse no longer exists."
        assert db_session.query(Supply).count() == 0

    def test_unknown_supplier_rejected(self, db_session, storage, reference_data, supply_form):
        """Test a supplier id with no row is rejected on the first step"""
        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(supply_form(supplier_id="999"))

        assert exc_info.value.step == 0
        assert db_session.query(Supply).count() == 0

    def test_finished_product_rejected(self, db_session, storage, reference_data, supply_form):
        """Test only RAW products can be received as batches"""
        form = supply_form(supply_batches=[{
            "product_id": str(reference_data["meal"].id),
            "unit_id": str(reference_data["bag"].id),
            "qty": "20",
            "accepted_qty": "20",
            "rejected_qty": "0",
            "unit_price": "45.00",
        }])

        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(form)

        assert exc_info.value.step == 5
        assert exc_info.value.message == "Maize Meal 5kg is not a raw product and cannot be received."
        assert db_session.query(Supply).count() == 0
        assert db_session.query(SupplyBatch).count() == 0

    def test_unknown_unit_rejected(self, db_session, storage, reference_data, supply_form):
        """Test a batch unit id with no row is rejected on the batches step"""
        form = supply_form(supply_batches=[{
            "product_id": str(reference_data["maize"].id),
            "unit_id": "999",
            "qty": "100",
            "accepted_qty": "100",
            "rejected_qty": "0",
            "unit_price": "2.50",
        }])

        with pytest.raises(ValidationError) as exc_info:
            SupplyIntakeService(db_session, storage=storage).create_supply(form)

        assert exc_info.value.step == 5
        assert db_session.query(Supply).count() == 0

    def test_oversize_invoice_only_warns(self, db_session, storage, reference_data, supply_form, monkeypatch):
        """Test an invoice the bucket refuses keeps the supply and is reported back"""
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 4)
        files = {"invoice_file": UploadedFile("invoice.pdf", b"%PDF-1.4", "application/pdf")}

        result = SupplyIntakeService(db_session, storage=storage).create_supply(supply_form(), files)

        assert result["warnings"] == [
            "Invoice file invoice.pdf was not stored: File exceeds maximum upload size of 4 bytes"
        ]
        assert db_session.query(Supply).count() == 1
        assert db_session.query(Document).count() == 0
        invoice = db_session.query(SupplyDocument).filter(SupplyDocument.document_type_code == "INVOICE").one()
        assert invoice.value == "INV-1001"
        assert invoice.document_id is None


class TestPaymentOnCapture:
    """Test the optional payment captured with a supply"""

    def test_payment_recorded(self, db_session, storage, test_user, reference_data, supply_form):
        """Test a payment within the expected value is saved"""
        form = supply_form(payment={"amount": "100.00", "reference": "EFT-1"})

        result = SupplyIntakeService(db_session, test_user, storage).create_supply(form)

        payment = db_session.query(SupplyPayment).one()
        assert result["payment_id"] == payment.id
        assert payment.amount == Decimal("100.00")
        assert payment.reference == "EFT-1"

    def test_excess_payment_only_warns(self, db_session, storage, test_user, reference_data, supply_form):
        """Test an over-payment is skipped while the supply is kept"""
        form = supply_form(payment={"amount": "1000"})

        result = SupplyIntakeService(db_session, test_user, storage).create_supply(form)

        assert result["payment_id"] is None
        assert result["warnings"] == ["Payment not recorded: Amount cannot exceed the outstanding balance (250.00)."]
        assert db_session.query(Supply).count() == 1
        assert db_session.query(SupplyPayment).count() == 0


class TestDocNumbers:
    """Test per-day document numbering"""

    def test_preview_without_supplies(self, db_session, reference_data):
        """Test the first number of the day"""
        assert SupplyIntakeService(db_session).preview_doc_number() == f"{today_prefix()}-001"

    def test_sequence_continues_from_existing_numbers(self, db_session, reference_data):
        """Test numbering picks up after numbers already issued today"""
        db_session.add(Supply(doc_no=f"{today_prefix()}-007", warehouse_id=reference_data["warehouse"].id))
        db_session.commit()
        service = SupplyIntakeService(db_session)

        assert service.preview_doc_number() == f"{today_prefix()}-008"
        assert service.reserve_doc_number() == f"{today_prefix()}-008"
        assert service.reserve_doc_number() == f"{today_prefix()}-009"
        assert service.preview_doc_number() == f"{today_prefix()}-010"

    def test_consecutive_supplies(self, db_session, storage, reference_data, supply_form):
        """Test two submits get consecutive numbers"""
        service = SupplyIntakeService(db_session, storage=storage)

        first = service.create_supply(supply_form())
        second = service.create_supply(supply_form())

        assert first["doc_no"] == f"{today_prefix()}-001"
        assert second["doc_no"] == f"{today_prefix()}-002"


class TestEditSupply:
    """Test loading a supply into the wizard and saving the edit"""

    def test_load_form(self, db_session, storage, reference_data, supply_form):
        """Test stored rows are rebuilt into wizard fields"""
        service = SupplyIntakeService(db_session, storage=storage)
        created = service.create_supply(supply_form())

        form = service.load_form(created["supply_id"])

        assert form.doc_no == created["doc_no"]
        assert form.received_at == "2024-05-01T10:00"
        assert form.supply_batches[0].qty == "100"
        assert form.supply_batches[0].accepted_qty == "100"
        assert form.supply_batches[0].unit_price == "2.5"
        assert form.quality_entries["MOISTURE"].score == 3
        assert form.quality_entries["MOISTURE"].remarks == "12.5%"
        assert form.documents.invoice_number == "INV-1001"
        assert form.documents.production_date == "2024-04-20"
        assert form.documents.coa_available == "YES"
        assert form.vehicle_inspection.vehicle_clean == "YES"
        assert form.packaging_quality.specified_quantity == "50"
        assert form.packaging_quality.odor == "GOOD"
        assert form.supplier_sign_off.signature_type == "E_SIGNATURE"

    def test_update_supply(self, db_session, storage, test_user, reference_data, supply_form):
        """Test an edit replaces lines and keeps the document number"""
        service = SupplyIntakeService(db_session, test_user, storage)
        created = service.create_supply(supply_form())
        form = service.load_form(created["supply_id"])
        form.supply_batches[0].accepted_qty = "80"
        form.supply_batches[0].rejected_qty = "20"
        form.documents.batch_number = "GVF-2024-18"

        result = service.update_supply(created["supply_id"], form)

        assert result["doc_no"] == created["doc_no"]
        assert result["redirect_to"] == f"/supplies/{created['supply_id']}"
        assert result["quality_status"] == "FAILED"
        assert db_session.query(SupplyLine).count() == 1
        assert db_session.query(SupplyBatch).one().accepted_qty == Decimal("80")
        assert db_session.query(SupplyQualityCheck).count() == 1
        assert db_session.query(ProcessLotRun).count() == 0
        batch_number = db_session.query(SupplyDocument).filter(
            SupplyDocument.document_type_code == "BATCH_NUMBER"
        ).one()
        assert batch_number.value == "GVF-2024-18"
        assert db_session.query(AuditLog).filter(AuditLog.audit_action == "UPDATE_SUPPLY").count() == 1

    def test_update_keeps_uploaded_signature(self, db_session, storage, reference_data, supply_form):
        """Test an edit without a new file keeps the stored signature document"""
        service = SupplyIntakeService(db_session, storage=storage)
        created = service.create_supply(
            supply_form(supplier_sign_off={"signature_type": "UPLOADED_DOCUMENT", "signed_by_name": "Sipho Dlamini"}),
            {"signature_file": UploadedFile("signed.png", b"\x89PNG", "image/png")},
        )
        document_id = db_session.query(SupplySupplierSignOff).one().document_id

        form = service.load_form(created["supply_id"])
        assert form.supplier_sign_off.document_file_name == "signed.png"
        service.update_supply(created["supply_id"], form)

        assert db_session.query(SupplySupplierSignOff).one().document_id == document_id

    def test_update_reuses_ids_without_identity_warning(self, db_session, storage, reference_data, supply_form):
        """Test replaced rows leave the session before their ids are reused"""
        service = SupplyIntakeService(db_session, storage=storage)
        created = service.create_supply(supply_form())
        form = service.load_form(created["supply_id"])

        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            service.update_supply(created["supply_id"], form)
            service.update_supply(created["supply_id"], service.load_form(created["supply_id"]))

        assert db_session.query(SupplyDocument).filter(SupplyDocument.supply_id == created["supply_id"]).count() == 6

    def test_edit_refused_after_processing(self, db_session, storage, reference_data, supply_form):
        """Test a supply whose lot run has completed cannot be edited"""
        service = SupplyIntakeService(db_session, storage=storage)
        created = service.create_supply(supply_form())
        batch = db_session.query(SupplyBatch).one()
        run = db_session.query(ProcessLotRun).one()
        batch.process_status = "PROCESSED"
        run.status = "COMPLETED"
        db_session.commit()

        form = service.load_form(created["supply_id"])
        form.supply_batches[0].accepted_qty = "80"
        form.supply_batches[0].rejected_qty = "20"

        with pytest.raises(BusinessLogicError) as exc_info:
            service.update_supply(created["supply_id"], form)

        assert str(exc_info.value) == (
            f"Supply {created['doc_no']} can no longer be edited: processing is complete for {batch.lot_no}."
        )
        assert db_session.query(ProcessLotRun).one().status == "COMPLETED"
        assert db_session.query(SupplyBatch).one().process_status == "PROCESSED"
        assert db_session.query(SupplyBatch).one().accepted_qty == Decimal("100")

    def test_edit_allowed_while_run_in_progress(self, db_session, storage, reference_data, supply_form):
        """Test an open lot run does not block an edit"""
        service = SupplyIntakeService(db_session, storage=storage)
        created = service.create_supply(supply_form())
        assert db_session.query(ProcessLotRun).one().status == "IN_PROGRESS"

        result = service.update_supply(created["supply_id"], service.load_form(created["supply_id"]))

        assert result["doc_no"] == created["doc_no"]
        assert db_session.query(ProcessLotRun).count() == 1

    def test_unknown_supply(self, db_session, reference_data, supply_form):
        """Test editing a missing supply"""
        service = SupplyIntakeService(db_session)

        with pytest.raises(NotFoundError):
            service.load_form(999)
        with pytest.raises(NotFoundError):
            service.update_supply(999, supply_form())
