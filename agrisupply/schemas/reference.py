"""Reference data schemas"""

from pydantic import BaseModel, ConfigDict
from typing import Optional, List


class ReferenceBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class WarehouseResponse(ReferenceBase):
    id: int
    name: str
    code: Optional[str] = None


class ProductResponse(ReferenceBase):
    id: int
    name: str
    sku: Optional[str] = None
    product_type: Optional[str] = None


class UnitResponse(ReferenceBase):
    id: int
    name: str
    symbol: Optional[str] = None


class QualityParameterResponse(ReferenceBase):
    id: int
    code: str
    name: str
    specification: str = ""


class PackagingParameterResponse(ReferenceBase):
    id: int
    code: str
    name: str
    input_type: str


class SupplierResponse(ReferenceBase):
    id: int
    name: str
    supplier_type: Optional[str] = None


class UserProfileResponse(ReferenceBase):
    id: int
    email: str
    full_name: Optional[str] = None
    role: Optional[str] = None


class ReferenceDataResponse(BaseModel):
    warehouses: List[WarehouseResponse]
    products: List[ProductResponse]
    raw_products: List[ProductResponse]
    units: List[UnitResponse]
    quality_parameters: List[QualityParameterResponse]
    packaging_parameters: List[PackagingParameterResponse]
    suppliers: List[SupplierResponse]
    user_profiles: List[UserProfileResponse]
    warnings: List[str] = []
