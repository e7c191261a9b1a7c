"""
Audit Trail Model
Who changed which supply, payment or supplier document
"""
from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.sql import func

from agrisupply.core.database import Base


class AuditLog(Base):
    """Audit trail entry; old and new values are stored as JSON text"""
    __tablename__ = "audit_logs"

    audit_id = Column(Integer, primary_key=True, autoincrement=True)
    audit_timestamp = Column(DateTime(timezone=True), server_default=func.current_timestamp(), index=True)
    audit_user = Column(String(120), nullable=False, index=True)
    audit_action = Column(String(30), nullable=False, index=True)  # CREATE_SUPPLY, UPDATE_SUPPLY, RECORD_PAYMENT...
    audit_table = Column(String(50), index=True)
    audit_key = Column(String(100))
    audit_old_values = Column(Text)
    audit_new_values = Column(Text)
    audit_ip_address = Column(String(45))
    audit_user_agent = Column(String(255))
