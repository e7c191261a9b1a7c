"""
Uploaded document metadata
One row per object stored in the documents bucket
"""
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from agrisupply.core.database import Base


class Document(Base):
    """File stored in object storage, owned by a supply or a supplier"""
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_owner", "owner_type", "owner_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_type = Column(String(20), nullable=False, doc="supply or supplier")
    owner_id = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, doc="Original filename")
    storage_path = Column(String(500), nullable=False, unique=True)
    content_type = Column(String(100))
    doc_type = Column(String(30))
    document_type_code = Column(String(30), doc="INVOICE, SIGNATURE, COA")
    expiry_date = Column(Date)
    uploaded_by = Column(Integer, ForeignKey("user_profiles.id", ondelete="SET NULL"))
    uploaded_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
