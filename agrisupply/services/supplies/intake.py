"""
Supply Intake Service
Persists a completed intake wizard, or an edit of an existing supply, as one
database transaction.
"""
from typing import Dict, List, Optional, Tuple
from datetime import date, datetime, timezone
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from agrisupply.core.config import settings
from agrisupply.core.database import upsert
from agrisupply.core.exceptions import BusinessLogicError, NotFoundError, StorageError, ValidationError
from agrisupply.core.security import log_user_action
from agrisupply.models import (
    Supply, SupplyLine, SupplyBatch, SupplyQualityCheck, SupplyQualityCheckItem,
    SupplyDocument, SupplyVehicleInspection, SupplyPackagingQualityCheck,
    SupplyPackagingQualityCheckItem, SupplySupplierSignOff, SupplyDocSequence,
    ProcessLotRun, UserProfile, Warehouse, Supplier, Product, Unit
)
from agrisupply.schemas.process import LotRunStatus
from agrisupply.schemas.supply import (
    BatchEntry, QualityEntry, SupplyForm, SupplyDocumentsForm, VehicleInspectionForm,
    PackagingQualityForm, SupplierSignOffForm, PaymentEntry, SignatureType,
    BatchQualityStatus, ProcessStatus
)
from agrisupply.services.payments import PaymentService
from agrisupply.services.process.pipeline import ProcessLotRunService
from agrisupply.services.reference_data import RAW_PRODUCT_TYPE, ReferenceDataService, resolve_profile
from agrisupply.services.storage import (
    ObjectStorage, UploadedFile, store_document, discard_uploads, supply_document_path
)
from agrisupply.services.supplies import rules
from agrisupply.services.supplies.wizard import SupplyWizard, to_local_datetime_input

logger = logging.getLogger(__name__)

DOCUMENT_TEXT_FIELDS = [
    ("INVOICE", "invoice_number"),
    ("DRIVER_LICENSE", "driver_license_name"),
    ("BATCH_NUMBER", "batch_number"),
]
DOCUMENT_DATE_FIELDS = [
    ("PRODUCTION_DATE", "production_date", "production date"),
    ("EXPIRY_DATE", "expiry_date", "expiry date"),
]
# (parameter code, form field, numeric)
PACKAGING_FIELDS = [
    ("INACCURATE_LABELLING", "inaccurate_labelling", False),
    ("VISIBLE_DAMAGE", "visible_damage", False),
    ("SPECIFIED_QUANTITY", "specified_quantity", True),
    ("ODOR", "odor", False),
    ("STRENGTH_INTEGRITY", "strength_integrity", False),
]


def _parse_received_at(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError("Enter a valid received date and time.", step=0)


def _parse_date(value: str, label: str) -> Optional[date]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Enter a valid {label}.", step=1)


def _to_id(value: str, message: str, step: int) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(message, step=step)


def _text_or_none(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class SupplyIntakeService:
    """
    Supply intake persistence

    A submit writes the supply, its lines and batches, the quality check,
    documents, inspections and sign-off together; nothing is left behind if
    any of them fails. Process lot runs and an optional payment are attempted
    afterwards inside savepoints and only produce warnings when they fail.
    """

    def __init__(
        self,
        db: Session,
        current_user: Optional[UserProfile] = None,
        storage: Optional[ObjectStorage] = None,
    ):
        self.db = db
        self.current_user = current_user
        self.storage = storage or ObjectStorage()
        self.reference = ReferenceDataService(db)

    # Document numbers

    def _today(self) -> date:
        return date.today()

    def _existing_doc_numbers(self, day: date) -> List[str]:
        prefix = f"{settings.DOC_NUMBER_PREFIX}-{day:%Y%m%d}-"
        rows = self.db.query(Supply.doc_no).filter(Supply.doc_no.like(f"{prefix}%")).all()
        return [doc_no for (doc_no,) in rows]

    def preview_doc_number(self, day: Optional[date] = None) -> str:
        """Number the next submit will most likely receive; not reserved"""
        day = day or self._today()
        sequence = self.db.query(SupplyDocSequence).filter(SupplyDocSequence.doc_date == day).first()
        if sequence:
            return rules.format_doc_number(day, sequence.last_value + 1, settings.DOC_NUMBER_PREFIX)
        return rules.compute_next_doc_number(self._existing_doc_numbers(day), day, settings.DOC_NUMBER_PREFIX)

    def reserve_doc_number(self, day: Optional[date] = None) -> str:
        """
        Take the next document number for the day.

        The per-day counter row is created on first use, seeded from the
        numbers already issued, then incremented under a row lock.
        """
        day = day or self._today()
        prefix = settings.DOC_NUMBER_PREFIX

        seed = rules.compute_next_doc_number(self._existing_doc_numbers(day), day, prefix)
        upsert(
            self.db,
            SupplyDocSequence,
            {"doc_date": day, "last_value": rules.doc_number_sequence(seed, day, prefix) - 1},
            conflict_columns=["doc_date"],
            update_columns=[],
        )

        sequence = self.db.query(SupplyDocSequence).filter(
            SupplyDocSequence.doc_date == day
        ).with_for_update().one()
        sequence.last_value += 1
        self.db.flush()
        return rules.format_doc_number(day, sequence.last_value, prefix)

    # Submit

    def _validate(self, form: SupplyForm, files: Dict[str, UploadedFile], quality_parameters) -> None:
        invoice_file = files.get("invoice_file")
        signature_file = files.get("signature_file")
        if invoice_file is not None:
            form.documents.invoice_file_name = invoice_file.filename
        if signature_file is not None:
            form.supplier_sign_off.document_file_name = signature_file.filename

        SupplyWizard(form=form, quality_parameters=quality_parameters).require_valid()

    def _check_references(
        self, warehouse_id: Optional[int], supplier_id: Optional[int], entries: List[BatchEntry]
    ) -> None:
        """Selected rows must exist; batches only take RAW products"""
        if self.reference.get(Warehouse, warehouse_id) is None:
            raise ValidationError("The selected warehouse no longer exists.", step=0)
        if supplier_id is not None and self.reference.get(Supplier, supplier_id) is None:
            raise ValidationError("The selected supplier no longer exists.", step=0)

        for entry in entries:
            product = self.reference.get(Product, _to_id(entry.product_id, "Select a product for every batch.", 5))
            if product is None:
                raise ValidationError("The selected product no longer exists.", step=5)
            if product.product_type != RAW_PRODUCT_TYPE:
                raise ValidationError(f"{product.name} is not a raw product and cannot be received.", step=5)
            unit_id = _to_id(entry.unit_id, "Select a unit for every batch.", 5)
            if unit_id is not None and self.reference.get(Unit, unit_id) is None:
                raise ValidationError("The selected unit no longer exists.", step=5)

    def _check_editable(self, supply: Supply) -> None:
        """Batches replaced by an edit must not have finished processing"""
        finished = self.db.query(SupplyBatch.lot_no).outerjoin(
            ProcessLotRun, ProcessLotRun.supply_batch_id == SupplyBatch.id
        ).filter(
            SupplyBatch.supply_id == supply.id,
            or_(
                SupplyBatch.process_status == ProcessStatus.PROCESSED.value,
                and_(ProcessLotRun.id.isnot(None), ProcessLotRun.status != LotRunStatus.IN_PROGRESS.value),
            ),
        ).order_by(SupplyBatch.lot_no).all()

        if finished:
            lots = ", ".join(lot_no for (lot_no,) in finished)
            raise BusinessLogicError(
                f"Supply {supply.doc_no} can no longer be edited: processing is complete for {lots}."
            )

    def create_supply(self, form: SupplyForm, files: Optional[Dict[str, UploadedFile]] = None) -> Dict:
        """
        Create a supply from a completed wizard

        Raises:
            ValidationError: a wizard step is incomplete or a selected row is
                missing; nothing was written
        """
        files = files or {}
        quality_parameters = self.reference.quality_parameters()
        self._validate(form, files, quality_parameters)

        warehouse_id = _to_id(form.warehouse_id, "Select a warehouse before saving.", 0)
        supplier_id = _to_id(form.supplier_id, "Select a supplier before saving.", 0)
        self._check_references(warehouse_id, supplier_id, form.supply_batches)
        received_at = _parse_received_at(form.received_at)
        receiver = resolve_profile(self.current_user)
        uploaded: List[str] = []

        try:
            doc_no = self.reserve_doc_number()
            supply = Supply(
                doc_no=doc_no,
                warehouse_id=warehouse_id,
                supplier_id=supplier_id,
                received_at=received_at,
                received_by=receiver.id,
                doc_status=form.doc_status,
                quality_status=rules.derive_quality_status(form.quality_entries, form.supply_batches),
            )
            self.db.add(supply)
            self.db.flush()

            batches = self._write_lines_and_batches(supply, form.supply_batches)
            self._write_quality_check(supply, form, quality_parameters, receiver.id)
            invoice_warning = self._write_supply_documents(
                supply, form.documents, files.get("invoice_file"), uploaded
            )
            self._write_vehicle_inspection(supply, form.vehicle_inspection, receiver.id)
            self._write_packaging_check(supply, form.packaging_quality, receiver.id)
            self._write_sign_off(supply, form.supplier_sign_off, files.get("signature_file"), receiver.id, uploaded)

            lot_numbers = [batch.lot_no for batch in batches]
            lot_run_ids, warnings = self._open_process_lot_runs(batches)
            if invoice_warning:
                warnings.insert(0, invoice_warning)
            payment_id, payment_warning = self._record_payment(supply, form.payment)
            if payment_warning:
                warnings.append(payment_warning)

            supply_id = supply.id
            quality_status = supply.quality_status
            log_user_action(
                db=self.db,
                user=self.current_user,
                action="CREATE_SUPPLY",
                table="supplies",
                key=doc_no,
                new_values={
                    "warehouse_id": warehouse_id,
                    "supplier_id": supplier_id,
                    "batches": len(batches),
                    "quality_status": quality_status,
                },
                commit=False,
            )
            self.db.commit()

        except Exception as e:
            self.db.rollback()
            discard_uploads(self.storage, uploaded)
            logger.error(f"Error capturing supply: {e}")
            raise

        logger.info(f"Supply {doc_no} captured with {len(lot_numbers)} batches ({quality_status})")
        return {
            "supply_id": supply_id,
            "doc_no": doc_no,
            "quality_status": quality_status,
            "lot_numbers": lot_numbers,
            "process_lot_run_ids": lot_run_ids,
            "payment_id": payment_id,
            "warnings": warnings,
            "redirect_to": "/supplies",
            "next_doc_number": self.preview_doc_number(),
        }

    def update_supply(
        self, supply_id: int, form: SupplyForm, files: Optional[Dict[str, UploadedFile]] = None
    ) -> Dict:
        """
        Save an edited supply

        Header, inspections and sign-off are updated in place; lines, batches,
        quality items, documents and packaging items are replaced.
        """
        supply = self.db.query(Supply).filter(Supply.id == supply_id).first()
        if not supply:
            raise NotFoundError(f"Supply {supply_id} not found")
        self._check_editable(supply)

        files = files or {}
        existing_sign_off = self.db.query(SupplySupplierSignOff).filter(
            SupplySupplierSignOff.supply_id == supply_id
        ).first()
        existing_invoice = self.db.query(SupplyDocument).filter(
            SupplyDocument.supply_id == supply_id,
            SupplyDocument.document_type_code == "INVOICE"
        ).first()
        keep_signature_id = existing_sign_off.document_id if existing_sign_off else None
        keep_invoice_id = existing_invoice.document_id if existing_invoice else None

        quality_parameters = self.reference.quality_parameters()
        self._validate(form, files, quality_parameters)

        warehouse_id = _to_id(form.warehouse_id, "Select a warehouse before saving.", 0)
        supplier_id = _to_id(form.supplier_id, "Select a supplier before saving.", 0)
        self._check_references(warehouse_id, supplier_id, form.supply_batches)
        received_at = _parse_received_at(form.received_at)
        receiver = resolve_profile(self.current_user)
        uploaded: List[str] = []
        old_values = {
            "warehouse_id": supply.warehouse_id,
            "supplier_id": supply.supplier_id,
            "doc_status": supply.doc_status,
            "quality_status": supply.quality_status,
        }

        try:
            supply.warehouse_id = warehouse_id
            supply.supplier_id = supplier_id
            supply.received_at = received_at
            supply.doc_status = form.doc_status
            supply.quality_status = rules.derive_quality_status(form.quality_entries, form.supply_batches)
            self.db.flush()

            self._delete_replaceable_children(supply_id)
            self.db.expire(supply, ["lines", "batches", "documents"])

            batches = self._write_lines_and_batches(supply, form.supply_batches)
            latest_check = self.db.query(SupplyQualityCheck).filter(
                SupplyQualityCheck.supply_id == supply_id
            ).order_by(SupplyQualityCheck.id.desc()).first()
            self._write_quality_check(supply, form, quality_parameters, receiver.id, latest_check)
            invoice_warning = self._write_supply_documents(
                supply, form.documents, files.get("invoice_file"), uploaded, keep_invoice_id
            )
            self._write_vehicle_inspection(supply, form.vehicle_inspection, receiver.id)
            self._write_packaging_check(supply, form.packaging_quality, receiver.id)
            self._write_sign_off(
                supply, form.supplier_sign_off, files.get("signature_file"), receiver.id, uploaded,
                keep_signature_id
            )

            lot_numbers = [batch.lot_no for batch in batches]
            lot_run_ids, warnings = self._open_process_lot_runs(batches)
            if invoice_warning:
                warnings.insert(0, invoice_warning)

            doc_no = supply.doc_no
            quality_status = supply.quality_status
            log_user_action(
                db=self.db,
                user=self.current_user,
                action="UPDATE_SUPPLY",
                table="supplies",
                key=doc_no,
                old_values=old_values,
                new_values={
                    "warehouse_id": warehouse_id,
                    "supplier_id": supplier_id,
                    "doc_status": form.doc_status,
                    "quality_status": quality_status,
                },
                commit=False,
            )
            self.db.commit()

        except Exception as e:
            self.db.rollback()
            discard_uploads(self.storage, uploaded)
            logger.error(f"Error updating supply {supply_id}: {e}")
            raise

        logger.info(f"Supply {doc_no} updated")
        return {
            "supply_id": supply_id,
            "doc_no": doc_no,
            "quality_status": quality_status,
            "lot_numbers": lot_numbers,
            "process_lot_run_ids": lot_run_ids,
            "payment_id": None,
            "warnings": warnings,
            "redirect_to": f"/supplies/{supply_id}",
            "next_doc_number": None,
        }

    # Edit mode

    def load_form(self, supply_id: int) -> SupplyForm:
        """Rebuild the wizard form from the stored rows of a supply"""
        supply = self.db.query(Supply).filter(Supply.id == supply_id).first()
        if not supply:
            raise NotFoundError(f"Supply {supply_id} not found")

        batches = [
            BatchEntry(
                product_id=str(line.product_id),
                unit_id=str(line.unit_id) if line.unit_id else "",
                qty=rules.format_quantity(line.received_qty),
                accepted_qty=rules.format_quantity(line.accepted_qty),
                rejected_qty=rules.format_quantity(line.rejected_qty),
                unit_price=rules.format_quantity(line.unit_price) if line.unit_price is not None else "",
            )
            for line in supply.lines
        ]

        quality_entries = {}
        if supply.quality_checks:
            latest_check = supply.quality_checks[-1]
            for item in latest_check.items:
                quality_entries[item.parameter.code] = QualityEntry(
                    score=item.score, remarks=item.remarks or "", results=item.results or ""
                )

        documents = SupplyDocumentsForm()
        for row in supply.documents:
            if row.document_type_code == "INVOICE":
                documents.invoice_number = row.value or ""
                documents.invoice_file_name = row.document.name if row.document else None
            elif row.document_type_code == "DRIVER_LICENSE":
                documents.driver_license_name = row.value or ""
            elif row.document_type_code == "BATCH_NUMBER":
                documents.batch_number = row.value or ""
            elif row.document_type_code == "PRODUCTION_DATE" and row.date_value:
                documents.production_date = row.date_value.isoformat()
            elif row.document_type_code == "EXPIRY_DATE" and row.date_value:
                documents.expiry_date = row.date_value.isoformat()
            elif row.document_type_code == "COA" and row.boolean_value is not None:
                documents.coa_available = "YES" if row.boolean_value else "NO"

        vehicle = VehicleInspectionForm()
        if supply.vehicle_inspection:
            inspection = supply.vehicle_inspection
            vehicle = VehicleInspectionForm(
                vehicle_clean=inspection.vehicle_clean,
                no_foreign_objects=inspection.no_foreign_objects,
                no_pest_infestation=inspection.no_pest_infestation,
                remarks=inspection.remarks or "",
            )

        packaging = PackagingQualityForm()
        if supply.packaging_check:
            packaging.remarks = supply.packaging_check.remarks or ""
            fields = {code: (field, numeric) for code, field, numeric in PACKAGING_FIELDS}
            for item in supply.packaging_check.items:
                if item.parameter.code not in fields:
                    continue
                field, numeric = fields[item.parameter.code]
                if numeric:
                    value = rules.format_quantity(item.numeric_value) if item.numeric_value is not None else ""
                else:
                    value = item.value or ""
                setattr(packaging, field, value)

        sign_off = SupplierSignOffForm()
        if supply.sign_off:
            stored = supply.sign_off
            sign_off = SupplierSignOffForm(
                signature_type=stored.signature_type,
                signature_data=stored.signature_data,
                document_file_name=stored.document.name if stored.document else None,
                signed_by_name=stored.signed_by_name,
                remarks=stored.remarks or "",
            )

        receiver = supply.receiver
        return SupplyForm(
            doc_no=supply.doc_no,
            warehouse_id=str(supply.warehouse_id),
            supplier_id=str(supply.supplier_id) if supply.supplier_id else "",
            received_at=to_local_datetime_input(supply.received_at) if supply.received_at else "",
            received_by=(receiver.full_name or receiver.email) if receiver else "",
            doc_status=supply.doc_status,
            supply_batches=batches,
            quality_entries=quality_entries,
            documents=documents,
            vehicle_inspection=vehicle,
            packaging_quality=packaging,
            supplier_sign_off=sign_off,
        )

    # Writers

    def _delete_replaceable_children(self, supply_id: int) -> None:
        batch_ids = select(SupplyBatch.id).where(SupplyBatch.supply_id == supply_id)
        self.db.query(ProcessLotRun).filter(
            ProcessLotRun.supply_batch_id.in_(batch_ids)
        ).delete(synchronize_session="fetch")
        self.db.query(SupplyBatch).filter(SupplyBatch.supply_id == supply_id).delete(synchronize_session="fetch")
        self.db.query(SupplyLine).filter(SupplyLine.supply_id == supply_id).delete(synchronize_session="fetch")
        self.db.query(SupplyDocument).filter(SupplyDocument.supply_id == supply_id).delete(synchronize_session="fetch")

    def _write_lines_and_batches(self, supply: Supply, entries: List[BatchEntry]) -> List[SupplyBatch]:
        """One line and one batch per entry; batch n references line n"""
        batches = []
        for index, entry in enumerate(entries):
            received, accepted, rejected = rules.settle_line_quantities(entry)
            product_id = _to_id(entry.product_id, "Select a product for every batch.", 5)
            unit_id = _to_id(entry.unit_id, "Select a unit for every batch.", 5)

            line = SupplyLine(
                supply=supply,
                product_id=product_id,
                unit_id=unit_id,
                ordered_qty=received,
                received_qty=received,
                accepted_qty=accepted,
                rejected_qty=rejected,
                unit_price=rules.parse_quantity(entry.unit_price),
                variance_reason=rules.REJECTED_VARIANCE_REASON if rejected > 0 else None,
            )
            batch = SupplyBatch(
                supply=supply,
                line=line,
                product_id=product_id,
                unit_id=unit_id,
                lot_no=rules.generate_lot_number(supply.id, index, settings.LOT_NUMBER_PREFIX),
                received_qty=received,
                accepted_qty=accepted,
                rejected_qty=rejected,
                current_qty=accepted,
                quality_status=rules.batch_quality_status(received, accepted),
                process_status=ProcessStatus.UNPROCESSED.value,
            )
            self.db.add_all([line, batch])
            batches.append(batch)

        self.db.flush()
        return batches

    def _write_quality_check(
        self,
        supply: Supply,
        form: SupplyForm,
        quality_parameters,
        performer_id: Optional[int],
        check: Optional[SupplyQualityCheck] = None,
    ) -> SupplyQualityCheck:
        status = rules.quality_check_status(form.quality_entries, form.supply_batches)
        now = datetime.now(timezone.utc)
        values = {
            "check_name": f"Receiving inspection - {supply.doc_no}" if supply.doc_no else "Receiving inspection",
            "status": status,
            "result": status,
            "performed_by": performer_id,
            "performed_at": now,
            "evaluated_by": performer_id,
            "evaluated_at": now,
            "overall_score": rules.calculate_average_score(form.quality_entries),
        }

        if check is None:
            check = SupplyQualityCheck(supply_id=supply.id, **values)
            self.db.add(check)
        else:
            for field, value in values.items():
                setattr(check, field, value)
            self.db.query(SupplyQualityCheckItem).filter(
                SupplyQualityCheckItem.quality_check_id == check.id
            ).delete(synchronize_session="fetch")
        self.db.flush()

        for parameter in quality_parameters:
            entry = form.quality_entries.get(parameter.code)
            if entry is None:
                continue
            self.db.add(SupplyQualityCheckItem(
                quality_check_id=check.id,
                parameter_id=parameter.id,
                score=rules.normalise_score(entry.score),
                remarks=_text_or_none(entry.remarks),
                results=_text_or_none(entry.results),
            ))
        self.db.flush()
        return check

    def _write_supply_documents(
        self,
        supply: Supply,
        documents: SupplyDocumentsForm,
        invoice_file: Optional[UploadedFile],
        uploaded: List[str],
        keep_invoice_document_id: Optional[int] = None,
    ) -> Optional[str]:
        """
        One supply_documents row per populated field; the invoice file is optional

        Returns:
            A warning when the invoice file could not be stored
        """
        warning = None
        invoice_document_id = keep_invoice_document_id
        if documents.invoice_number and invoice_file is not None:
            path = supply_document_path(supply.id, "documents", "invoice", invoice_file.filename)
            try:
                document = store_document(
                    self.db, self.storage, invoice_file, path,
                    owner_type="supply",
                    owner_id=supply.id,
                    document_type_code="INVOICE",
                    uploaded_by=supply.received_by,
                    uploaded_paths=uploaded,
                )
                invoice_document_id = document.id
            except StorageError as e:
                logger.warning(f"Invoice upload for supply {supply.doc_no} failed: {e}")
                warning = f"Invoice file {invoice_file.filename} was not stored: {e}"

        rows = []
        for code, field in DOCUMENT_TEXT_FIELDS:
            value = _text_or_none(getattr(documents, field))
            if value:
                rows.append(SupplyDocument(
                    supply_id=supply.id,
                    document_type_code=code,
                    value=value,
                    document_id=invoice_document_id if code == "INVOICE" else None,
                ))

        for code, field, label in DOCUMENT_DATE_FIELDS:
            date_value = _parse_date(getattr(documents, field), label)
            if date_value:
                rows.append(SupplyDocument(supply_id=supply.id, document_type_code=code, date_value=date_value))

        if documents.coa_available:
            rows.append(SupplyDocument(
                supply_id=supply.id,
                document_type_code="COA",
                boolean_value=documents.coa_available == "YES",
            ))

        self.db.add_all(rows)
        self.db.flush()
        return warning

    def _write_vehicle_inspection(
        self, supply: Supply, inspection: VehicleInspectionForm, inspector_id: Optional[int]
    ) -> Optional[int]:
        if not inspection.is_complete():
            return None
        return upsert(
            self.db,
            SupplyVehicleInspection,
            {
                "supply_id": supply.id,
                "vehicle_clean": inspection.vehicle_clean,
                "no_foreign_objects": inspection.no_foreign_objects,
                "no_pest_infestation": inspection.no_pest_infestation,
                "inspected_by": inspector_id,
                "remarks": _text_or_none(inspection.remarks),
            },
            conflict_columns=["supply_id"],
        )

    def _write_packaging_check(
        self, supply: Supply, packaging: PackagingQualityForm, checker_id: Optional[int]
    ) -> Optional[int]:
        if not packaging.is_complete():
            return None

        check_id = upsert(
            self.db,
            SupplyPackagingQualityCheck,
            {"supply_id": supply.id, "checked_by": checker_id, "remarks": _text_or_none(packaging.remarks)},
            conflict_columns=["supply_id"],
        )
        self.db.query(SupplyPackagingQualityCheckItem).filter(
            SupplyPackagingQualityCheckItem.packaging_check_id == check_id
        ).delete(synchronize_session="fetch")

        parameter_ids = self.reference.packaging_parameter_ids()
        for code, field, numeric in PACKAGING_FIELDS:
            parameter_id = parameter_ids.get(code)
            if parameter_id is None:
                logger.warning(f"Packaging parameter {code} is not configured; item skipped")
                continue
            raw = getattr(packaging, field)
            self.db.add(SupplyPackagingQualityCheckItem(
                packaging_check_id=check_id,
                parameter_id=parameter_id,
                value=None if numeric else raw,
                numeric_value=rules.parse_quantity(raw) if numeric else None,
            ))
        self.db.flush()
        return check_id

    def _write_sign_off(
        self,
        supply: Supply,
        sign_off: SupplierSignOffForm,
        signature_file: Optional[UploadedFile],
        signer_user_id: Optional[int],
        uploaded: List[str],
        keep_document_id: Optional[int] = None,
    ) -> Optional[int]:
        if not sign_off.signature_type or not sign_off.signed_by_name:
            return None

        is_upload = sign_off.signature_type == SignatureType.UPLOADED_DOCUMENT.value
        document_id = keep_document_id if is_upload else None
        if is_upload and signature_file is not None:
            path = supply_document_path(supply.id, "signatures", "signature", signature_file.filename)
            document_id = store_document(
                self.db, self.storage, signature_file, path,
                owner_type="supply",
                owner_id=supply.id,
                document_type_code="SIGNATURE",
                uploaded_by=signer_user_id,
                uploaded_paths=uploaded,
            ).id

        is_e_signature = sign_off.signature_type == SignatureType.E_SIGNATURE.value
        return upsert(
            self.db,
            SupplySupplierSignOff,
            {
                "supply_id": supply.id,
                "signature_type": sign_off.signature_type,
                "signature_data": sign_off.signature_data if is_e_signature else None,
                "document_id": document_id,
                "signed_by_name": sign_off.signed_by_name.strip(),
                "signed_by_user_id": signer_user_id,
                "remarks": _text_or_none(sign_off.remarks),
            },
            conflict_columns=["supply_id"],
        )

    # Best-effort follow-ups

    def _open_process_lot_runs(self, batches: List[SupplyBatch]) -> Tuple[List[int], List[str]]:
        """Open runs for passed, unprocessed batches; a failure only skips that batch"""
        service = ProcessLotRunService(self.db)
        run_ids, warnings = [], []

        for batch in batches:
            if (batch.quality_status != BatchQualityStatus.PASSED.value
                    or batch.process_status not in (None, ProcessStatus.UNPROCESSED.value)):
                continue
            batch_id, lot_no = batch.id, batch.lot_no
            try:
                with self.db.begin_nested():
                    run = service.create_for_batch(batch_id)
            except Exception as e:
                logger.warning(f"Failed to auto-create process lot run for batch {lot_no}: {e}")
                warnings.append(f"Process lot run not created for {lot_no}: {e}")
                continue
            if run is not None:
                run_ids.append(run.id)

        return run_ids, warnings

    def _record_payment(self, supply: Supply, entry: Optional[PaymentEntry]) -> Tuple[Optional[int], Optional[str]]:
        if entry is None or not entry.amount.strip():
            return None, None

        doc_no = supply.doc_no
        try:
            with self.db.begin_nested():
                payment = PaymentService(self.db, self.current_user).record_payment(
                    supply.id,
                    entry.amount,
                    paid_at=datetime.fromisoformat(entry.paid_at) if entry.paid_at else None,
                    reference=entry.reference,
                    commit=False,
                )
        except Exception as e:
            logger.warning(f"Supply {doc_no} saved but the payment was not recorded: {e}")
            return None, f"Payment not recorded: {e}"
        return payment.id, None
