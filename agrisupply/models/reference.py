"""
Reference Data Models
Lookup tables loaded by the supply intake screens
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, CheckConstraint
)
from sqlalchemy.sql import func

from agrisupply.core.database import Base


class Warehouse(Base):
    """Receiving warehouse"""
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, doc="Warehouse name")
    code = Column(String(20), unique=True, doc="Warehouse code")
    address = Column(Text)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class Unit(Base):
    """Unit of measure"""
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    symbol = Column(String(10))


class Product(Base):
    """Product master; only RAW products can be received as supply batches"""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint(
            "product_type IN ('RAW', 'WIP', 'FINISHED', 'OPERATIONAL')",
            name="product_type"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    sku = Column(String(40), unique=True)
    product_type = Column(String(20), doc="RAW, WIP, FINISHED or OPERATIONAL")
    base_unit_id = Column(Integer)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class QualityParameter(Base):
    """Named inspection criterion scored 1-3 or N/A"""
    __tablename__ = "quality_parameters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    specification = Column(String(200), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())


class PackagingQualityParameter(Base):
    """Fixed packaging checklist entry"""
    __tablename__ = "packaging_quality_parameters"
    __table_args__ = (
        CheckConstraint(
            "input_type IN ('YES_NO_NA', 'NUMERIC', 'GOOD_BAD_NA')",
            name="input_type"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    input_type = Column(String(20), nullable=False)


class Supplier(Base):
    """Raw material supplier"""
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    supplier_type = Column(String(50))
    country = Column(String(60))
    phone = Column(String(30))
    email = Column(String(120))
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class UserProfile(Base):
    """Application user; receivers, inspectors and signers resolve to this table"""
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(120), unique=True, nullable=False, index=True)
    full_name = Column(String(120))
    password_hash = Column(String(255), nullable=False)
    role = Column(String(30), default="staff")
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or ""
