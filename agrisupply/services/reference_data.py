"""
Reference Data Service
Lookup tables the intake screens load once per page
"""

from collections import namedtuple
from typing import Dict, List, Optional, Any
import logging

from sqlalchemy.orm import Session

from agrisupply.models import (
    Warehouse, Product, Unit, QualityParameter, PackagingQualityParameter,
    Supplier, UserProfile
)
from agrisupply.services.supplies.wizard import NO_QUALITY_PARAMETERS_WARNING

logger = logging.getLogger(__name__)

ReceiverProfile = namedtuple("ReceiverProfile", ["id", "name"])

RAW_PRODUCT_TYPE = "RAW"


def raw_products(products: List[Product]) -> List[Product]:
    """Only RAW products can be received as supply batches"""
    return [product for product in products if product.product_type == RAW_PRODUCT_TYPE]


def resolve_profile(user: Optional[UserProfile]) -> ReceiverProfile:
    """Receiver id and display name: full name, else email"""
    if user is None:
        return ReceiverProfile(None, "")
    return ReceiverProfile(user.id, user.full_name or user.email or "")


class ReferenceDataService:
    """Read-only access to warehouses, products, units, parameters, suppliers and profiles"""

    def __init__(self, db: Session):
        self.db = db

    def quality_parameters(self) -> List[QualityParameter]:
        return self.db.query(QualityParameter).order_by(QualityParameter.id).all()

    def get(self, model, record_id: Optional[int]):
        """Row of a lookup table by id; None when missing"""
        if record_id is None:
            return None
        return self.db.query(model).filter(model.id == record_id).first()

    def packaging_parameter_ids(self) -> Dict[str, int]:
        """Packaging parameter id by code"""
        rows = self.db.query(PackagingQualityParameter.code, PackagingQualityParameter.id).all()
        return {code: parameter_id for code, parameter_id in rows}

    def load(self) -> Dict[str, Any]:
        """All lookup tables in one call"""
        products = self.db.query(Product).order_by(Product.name).all()
        quality_parameters = self.quality_parameters()

        warnings = []
        if not quality_parameters:
            logger.warning(NO_QUALITY_PARAMETERS_WARNING)
            warnings.append(NO_QUALITY_PARAMETERS_WARNING)

        return {
            "warehouses": self.db.query(Warehouse).order_by(Warehouse.name).all(),
            "products": products,
            "raw_products": raw_products(products),
            "units": self.db.query(Unit).order_by(Unit.name).all(),
            "quality_parameters": quality_parameters,
            "packaging_parameters": self.db.query(PackagingQualityParameter).order_by(PackagingQualityParameter.id).all(),
            "suppliers": self.db.query(Supplier).order_by(Supplier.name).all(),
            "user_profiles": self.db.query(UserProfile).order_by(UserProfile.full_name).all(),
            "warnings": warnings,
        }
