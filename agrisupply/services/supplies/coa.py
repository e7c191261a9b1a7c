"""
Supplier certificate-of-analysis lookups and uploads.

The status shown on the documents step never blocks the wizard; adding a COA
is a separate write against the supplier.
"""
from datetime import date
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from agrisupply.core.exceptions import NotFoundError, ValidationError
from agrisupply.core.security import log_user_action
from agrisupply.models import Document, Supplier, UserProfile
from agrisupply.services.storage import (
    ObjectStorage, UploadedFile, discard_uploads, store_document, supplier_coa_path
)

logger = logging.getLogger(__name__)

COA_DOCUMENT_TYPE = "COA"
SUPPLIER_OWNER_TYPE = "supplier"

STATUS_NONE = "NONE"
STATUS_VALID = "VALID"
STATUS_EXPIRED = "EXPIRED"


class SupplierCoaService:
    def __init__(self, db: Session, current_user: Optional[UserProfile] = None,
                 storage: Optional[ObjectStorage] = None):
        self.db = db
        self.current_user = current_user
        self.storage = storage or ObjectStorage()

    def _supplier(self, supplier_id: int) -> Supplier:
        supplier = self.db.query(Supplier).filter(Supplier.id == supplier_id).first()
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    def get_status(self, supplier_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Latest COA of a supplier

        A COA without an expiry date counts as valid.
        """
        today = today or date.today()
        documents = self.db.query(Document).filter(
            Document.owner_type == SUPPLIER_OWNER_TYPE,
            Document.owner_id == supplier_id,
            Document.document_type_code == COA_DOCUMENT_TYPE,
        ).order_by(Document.uploaded_at.desc(), Document.id.desc()).all()

        if not documents:
            return {"supplier_id": supplier_id, "status": STATUS_NONE, "expiry_date": None,
                    "document_id": None, "document_name": None}

        undated = [doc for doc in documents if doc.expiry_date is None]
        dated = sorted((doc for doc in documents if doc.expiry_date is not None),
                       key=lambda doc: doc.expiry_date, reverse=True)
        latest = dated[0] if dated else undated[0]

        if latest.expiry_date is None or latest.expiry_date >= today or undated:
            status = STATUS_VALID
        else:
            status = STATUS_EXPIRED

        return {
            "supplier_id": supplier_id,
            "status": status,
            "expiry_date": latest.expiry_date,
            "document_id": latest.id,
            "document_name": latest.name,
        }

    def add_coa(self, supplier_id: int, upload: UploadedFile, expiry_date: Optional[date] = None) -> Document:
        if upload is None or not upload.content:
            raise ValidationError("Select a COA file to upload.")

        self._supplier(supplier_id)
        uploaded_paths = []
        try:
            document = store_document(
                self.db,
                self.storage,
                upload,
                supplier_coa_path(supplier_id, upload.filename),
                owner_type=SUPPLIER_OWNER_TYPE,
                owner_id=supplier_id,
                document_type_code=COA_DOCUMENT_TYPE,
                uploaded_by=self.current_user.id if self.current_user else None,
                expiry_date=expiry_date,
                uploaded_paths=uploaded_paths,
            )
            log_user_action(
                db=self.db,
                user=self.current_user,
                action="ADD_COA",
                table="documents",
                key=str(document.id),
                new_values={"supplier_id": supplier_id, "storage_path": document.storage_path,
                            "expiry_date": expiry_date},
                commit=False,
            )
            self.db.commit()
            self.db.refresh(document)
        except Exception:
            self.db.rollback()
            discard_uploads(self.storage, uploaded_paths)
            raise

        logger.info(f"COA {document.id} added for supplier {supplier_id}")
        return document
