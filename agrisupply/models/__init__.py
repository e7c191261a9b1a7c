"""
Database models
"""
from .reference import (
    Warehouse, Unit, Product, QualityParameter, PackagingQualityParameter,
    Supplier, UserProfile
)
from .documents import Document
from .supply import (
    Supply, SupplyLine, SupplyBatch, SupplyQualityCheck, SupplyQualityCheckItem,
    SupplyDocument, SupplyVehicleInspection, SupplyPackagingQualityCheck,
    SupplyPackagingQualityCheckItem, SupplySupplierSignOff, SupplyPayment,
    SupplyDocSequence
)
from .process import Process, ProductProcess, ProcessLotRun
from .audit import AuditLog

__all__ = [
    "Warehouse", "Unit", "Product", "QualityParameter", "PackagingQualityParameter",
    "Supplier", "UserProfile", "Document",
    "Supply", "SupplyLine", "SupplyBatch", "SupplyQualityCheck", "SupplyQualityCheckItem",
    "SupplyDocument", "SupplyVehicleInspection", "SupplyPackagingQualityCheck",
    "SupplyPackagingQualityCheckItem", "SupplySupplierSignOff", "SupplyPayment",
    "SupplyDocSequence",
    "Process", "ProductProcess", "ProcessLotRun",
    "AuditLog",
]
