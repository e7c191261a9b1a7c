"""
Supply List Service
Capped, recency-ordered supply rows joined in memory with their child tables,
plus the search / date filter, pagination and summary figures of the list page.
"""
from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union
import logging
import math

from sqlalchemy.orm import Session

from agrisupply.core.config import settings
from agrisupply.models import (
    Supply, SupplyLine, SupplyBatch, SupplyQualityCheck, SupplyQualityCheckItem,
    SupplyDocument, SupplyVehicleInspection, SupplyPackagingQualityCheck,
    SupplyPackagingQualityCheckItem, SupplySupplierSignOff, Warehouse, Supplier,
    UserProfile, Product, Unit, QualityParameter, PackagingQualityParameter
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]


def row_to_dict(obj) -> Dict[str, Any]:
    """Column values of a mapped row"""
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


def _group_by(rows: Iterable, key: str) -> Dict[Any, List[Dict]]:
    grouped = defaultdict(list)
    for row in rows:
        grouped[getattr(row, key)].append(row_to_dict(row))
    return grouped


def _to_date(value: DateLike) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _local_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def filter_supplies(
    rows: List[Dict], search: str = "", received_from: DateLike = None, received_to: DateLike = None
) -> List[Dict]:
    """
    Case-insensitive search over doc number, warehouse and supplier names,
    and a received date range where `from` starts at 00:00 and `to` runs to
    the end of its day.
    """
    needle = (search or "").strip().lower()
    from_date = _to_date(received_from)
    to_date = _to_date(received_to)
    lower = datetime.combine(from_date, time.min) if from_date else None
    upper = datetime.combine(to_date, time.max) if to_date else None

    matches = []
    for row in rows:
        if needle and not any(
            needle in (row.get(field) or "").lower()
            for field in ("doc_no", "warehouse_name", "supplier_name")
        ):
            continue

        received_at = _local_naive(row.get("received_at"))
        if lower and (received_at is None or received_at < lower):
            continue
        if upper and (received_at is None or received_at > upper):
            continue
        matches.append(row)
    return matches


def paginate(rows: List[Dict], page: int = 1, page_size: Optional[int] = None) -> Dict[str, Any]:
    """Client-side style paging over an already filtered list; page is clamped"""
    page_size = page_size or settings.SUPPLY_PAGE_SIZE
    total = len(rows)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size
    return {
        "items": rows[start:start + page_size],
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": total_pages,
    }


def _quantity(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal(0)


def summarise(rows: List[Dict]) -> Dict[str, Any]:
    """Record count, accepted quantity and quantity still pending quality"""
    accepted = Decimal(0)
    pending = Decimal(0)
    for row in rows:
        accepted += sum((_quantity(line.get("accepted_qty")) for line in row.get("lines", [])), Decimal(0))
        for batch in row.get("batches", []):
            if (batch.get("quality_status") or "").upper() == "PENDING":
                pending += _quantity(batch.get("current_qty")) or _quantity(batch.get("received_qty"))
    return {
        "total_records": len(rows),
        "accepted_quantity": accepted,
        "pending_quality_quantity": pending,
    }


class SupplyListService:
    """Loads supplies with every child table and joins them by id"""

    def __init__(self, db: Session):
        self.db = db

    def _lookups(self) -> Dict[str, Dict[int, Any]]:
        return {
            "warehouses": {w.id: w.name for w in self.db.query(Warehouse).all()},
            "suppliers": {s.id: s.name for s in self.db.query(Supplier).all()},
            "profiles": {p.id: (p.full_name or p.email) for p in self.db.query(UserProfile).all()},
            "products": {p.id: p.name for p in self.db.query(Product).all()},
            "units": {u.id: u.symbol or u.name for u in self.db.query(Unit).all()},
            "quality_parameters": {p.id: p for p in self.db.query(QualityParameter).all()},
            "packaging_parameters": {p.id: p for p in self.db.query(PackagingQualityParameter).all()},
        }

    def _children(self, supply_ids: List[int]) -> Dict[str, Dict]:
        if not supply_ids:
            return defaultdict(dict)

        checks = self.db.query(SupplyQualityCheck).filter(SupplyQualityCheck.supply_id.in_(supply_ids)).all()
        check_ids = [check.id for check in checks]
        packaging = self.db.query(SupplyPackagingQualityCheck).filter(
            SupplyPackagingQualityCheck.supply_id.in_(supply_ids)
        ).all()
        packaging_ids = [check.id for check in packaging]

        return {
            "lines": _group_by(self.db.query(SupplyLine).filter(
                SupplyLine.supply_id.in_(supply_ids)).order_by(SupplyLine.id), "supply_id"),
            "batches": _group_by(self.db.query(SupplyBatch).filter(
                SupplyBatch.supply_id.in_(supply_ids)).order_by(SupplyBatch.id), "supply_id"),
            "quality_checks": _group_by(checks, "supply_id"),
            "quality_items": _group_by(self.db.query(SupplyQualityCheckItem).filter(
                SupplyQualityCheckItem.quality_check_id.in_(check_ids)).order_by(SupplyQualityCheckItem.id),
                "quality_check_id") if check_ids else {},
            "documents": _group_by(self.db.query(SupplyDocument).filter(
                SupplyDocument.supply_id.in_(supply_ids)).order_by(SupplyDocument.id), "supply_id"),
            "vehicle_inspections": _group_by(self.db.query(SupplyVehicleInspection).filter(
                SupplyVehicleInspection.supply_id.in_(supply_ids)), "supply_id"),
            "packaging_checks": _group_by(packaging, "supply_id"),
            "packaging_items": _group_by(self.db.query(SupplyPackagingQualityCheckItem).filter(
                SupplyPackagingQualityCheckItem.packaging_check_id.in_(packaging_ids)),
                "packaging_check_id") if packaging_ids else {},
            "sign_offs": _group_by(self.db.query(SupplySupplierSignOff).filter(
                SupplySupplierSignOff.supply_id.in_(supply_ids)), "supply_id"),
        }

    def _join(self, supply: Supply, children: Dict[str, Dict], lookups: Dict[str, Dict]) -> Dict[str, Any]:
        row = row_to_dict(supply)
        row["warehouse_name"] = lookups["warehouses"].get(supply.warehouse_id, "")
        row["supplier_name"] = lookups["suppliers"].get(supply.supplier_id, "")
        row["received_by_name"] = lookups["profiles"].get(supply.received_by, "")

        row["lines"] = children["lines"].get(supply.id, [])
        for line in row["lines"]:
            line["product_name"] = lookups["products"].get(line["product_id"], "")
            line["unit_name"] = lookups["units"].get(line["unit_id"], "")
        row["batches"] = children["batches"].get(supply.id, [])
        for batch in row["batches"]:
            batch["product_name"] = lookups["products"].get(batch["product_id"], "")

        row["quality_checks"] = children["quality_checks"].get(supply.id, [])
        for check in row["quality_checks"]:
            check["items"] = children["quality_items"].get(check["id"], [])
            for item in check["items"]:
                parameter = lookups["quality_parameters"].get(item["parameter_id"])
                item["parameter_code"] = parameter.code if parameter else None
                item["parameter_name"] = parameter.name if parameter else None
                item["parameter_specification"] = parameter.specification if parameter else None

        row["documents"] = children["documents"].get(supply.id, [])
        row["vehicle_inspection"] = next(iter(children["vehicle_inspections"].get(supply.id, [])), None)

        packaging = next(iter(children["packaging_checks"].get(supply.id, [])), None)
        if packaging is not None:
            packaging["items"] = children["packaging_items"].get(packaging["id"], [])
            for item in packaging["items"]:
                parameter = lookups["packaging_parameters"].get(item["parameter_id"])
                item["parameter_code"] = parameter.code if parameter else None
                item["parameter_name"] = parameter.name if parameter else None
        row["packaging_check"] = packaging
        row["sign_off"] = next(iter(children["sign_offs"].get(supply.id, [])), None)
        return row

    def load(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Most recently received supplies first, undated ones last"""
        supplies = self.db.query(Supply).order_by(
            Supply.received_at.desc().nulls_last(), Supply.id.desc()
        ).limit(limit or settings.SUPPLY_LIST_LIMIT).all()

        supply_ids = [supply.id for supply in supplies]
        children = self._children(supply_ids)
        lookups = self._lookups()
        logger.debug(f"Loaded {len(supplies)} supplies")
        return [self._join(supply, children, lookups) for supply in supplies]

    def load_one(self, supply_id: int) -> Optional[Dict[str, Any]]:
        supply = self.db.query(Supply).filter(Supply.id == supply_id).first()
        if not supply:
            return None
        return self._join(supply, self._children([supply.id]), self._lookups())

    def list_page(
        self,
        search: str = "",
        received_from: DateLike = None,
        received_to: DateLike = None,
        page: int = 1,
    ) -> Dict[str, Any]:
        rows = filter_supplies(self.load(), search, received_from, received_to)
        result = paginate(rows, page)
        result["summary"] = summarise(rows)
        return result
