"""
Test Configuration and Fixtures
Shared testing infrastructure for the supply intake service
"""

import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="agrisupply-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("STORAGE_ROOT", os.path.join(_TEST_ROOT, "storage"))
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from typing import Any, Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from agrisupply.main import app
from agrisupply.api.deps import get_storage
from agrisupply.core.database import get_db, Base
from agrisupply.models import (
    Warehouse, Unit, Product, QualityParameter, PackagingQualityParameter,
    Supplier, UserProfile, Process, ProductProcess
)
from agrisupply.schemas.auth import UserProfileCreate
from agrisupply.schemas.supply import SupplyForm
from agrisupply.services.auth_service import AuthService
from agrisupply.services.storage import ObjectStorage

TEST_PASSWORD = "testpassword123"

# In-memory SQLite shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage(tmp_path) -> ObjectStorage:
    """Object storage bucket under the test's temporary directory"""
    return ObjectStorage(root=tmp_path / "storage", bucket="documents")


@pytest.fixture(scope="function")
def client(db_session: Session, storage: ObjectStorage) -> Generator[TestClient, None, None]:
    """Create a test client with database and storage overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db_session: Session) -> UserProfile:
    """Create a receiving clerk"""
    return AuthService(db_session).create_user(UserProfileCreate(
        email="receiver@agrisupply.co.za",
        full_name="Thandi Nkosi",
        password=TEST_PASSWORD,
    ))


@pytest.fixture
def auth_headers(client: TestClient, test_user: UserProfile) -> Dict[str, str]:
    """Get authentication headers for test user"""
    login_data = {
        "username": test_user.email,
        "password": TEST_PASSWORD
    }

    response = client.post("/api/v1/auth/login", data=login_data)
    assert response.status_code == 200

    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reference_data(db_session: Session) -> Dict[str, Any]:
    """Warehouse, supplier, units, products, parameters and a default process"""
    warehouse = Warehouse(name="Main Warehouse", code="WH-01")
    supplier = Supplier(name="Green Valley Farms", supplier_type="Grower", country="South Africa")
    kg = Unit(name="Kilogram", symbol="kg")
    bag = Unit(name="Bag", symbol="bag")
    db_session.add_all([warehouse, supplier, kg, bag])
    db_session.flush()

    maize = Product(name="Yellow Maize", sku="RAW-MAIZE", product_type="RAW", base_unit_id=kg.id)
    beans = Product(name="Sugar Beans", sku="RAW-BEANS", product_type="RAW", base_unit_id=kg.id)
    meal = Product(name="Maize Meal 5kg", sku="FIN-MEAL5", product_type="FINISHED", base_unit_id=bag.id)
    db_session.add_all([maize, beans, meal])

    moisture = QualityParameter(code="MOISTURE", name="Moisture", specification="<= 13%")
    foreign = QualityParameter(code="FOREIGN_MATTER", name="Foreign matter", specification="<= 1%")
    db_session.add_all([moisture, foreign])

    db_session.add_all([
        PackagingQualityParameter(code="INACCURATE_LABELLING", name="Inaccurate labelling", input_type="YES_NO_NA"),
        PackagingQualityParameter(code="VISIBLE_DAMAGE", name="Visible damage", input_type="YES_NO_NA"),
        PackagingQualityParameter(code="SPECIFIED_QUANTITY", name="Specified quantity", input_type="NUMERIC"),
        PackagingQualityParameter(code="ODOR", name="Odor", input_type="GOOD_BAD_NA"),
        PackagingQualityParameter(code="STRENGTH_INTEGRITY", name="Strength and integrity", input_type="GOOD_BAD_NA"),
    ])
    db_session.flush()

    cleaning = Process(code="CLEAN-DRY", name="Clean and dry", product_ids=[maize.id])
    db_session.add(cleaning)
    db_session.flush()
    db_session.add(ProductProcess(product_id=maize.id, process_id=cleaning.id, is_default=True))
    db_session.commit()

    return {
        "warehouse": warehouse,
        "supplier": supplier,
        "kg": kg,
        "bag": bag,
        "maize": maize,
        "beans": beans,
        "meal": meal,
        "moisture": moisture,
        "foreign_matter": foreign,
        "process": cleaning,
    }


def build_supply_payload(reference: Dict[str, Any], **overrides) -> Dict[str, Any]:
    """Complete wizard state: one accepted maize batch, e-signature sign-off"""
    payload = {
        "warehouse_id": str(reference["warehouse"].id),
        "supplier_id": str(reference["supplier"].id),
        "received_at": "2024-05-01T10:00",
        "doc_status": "ACCEPTED",
        "supply_batches": [{
            "product_id": str(reference["maize"].id),
            "unit_id": str(reference["kg"].id),
            "qty": "100",
            "accepted_qty": "100",
            "rejected_qty": "0",
            "unit_price": "2.50",
        }],
        "quality_entries": {
            "MOISTURE": {"score": 3, "remarks": "12.5%"},
            "FOREIGN_MATTER": {"score": 3},
        },
        "documents": {
            "invoice_number": "INV-1001",
            "driver_license_name": "Sipho Dlamini",
            "batch_number": "GVF-2024-17",
            "production_date": "2024-04-20",
            "expiry_date": "2025-04-20",
            "coa_available": "YES",
        },
        "vehicle_inspection": {
            "vehicle_clean": "YES",
            "no_foreign_objects": "YES",
            "no_pest_infestation": "YES",
        },
        "packaging_quality": {
            "inaccurate_labelling": "NO",
            "visible_damage": "NO",
            "specified_quantity": "50",
            "odor": "GOOD",
            "strength_integrity": "GOOD",
        },
        "supplier_sign_off": {
            "signature_type": "E_SIGNATURE",
            "signature_data": "data:image/png;base64,iVBORw0KGgo=",
            "signed_by_name": "Sipho Dlamini",
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def supply_payload(reference_data) -> Callable[..., Dict[str, Any]]:
    """Factory for the JSON the intake form posts"""
    def factory(**overrides) -> Dict[str, Any]:
        return build_supply_payload(reference_data, **overrides)
    return factory


@pytest.fixture
def supply_form(reference_data) -> Callable[..., SupplyForm]:
    """Factory for a complete SupplyForm; keyword overrides replace top-level sections"""
    def factory(**overrides) -> SupplyForm:
        return SupplyForm.model_validate(build_supply_payload(reference_data, **overrides))
    return factory
