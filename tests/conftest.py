import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.config import settings
from app.main import app
from app.database import Base, get_db
from app.api.deps import get_notification_service, get_gateway
from app.core.exceptions import ExternalServiceError
from app.models.warehouse import Warehouse, WarehouseZone, WarehouseFloor, WarehouseHall
from app.services.cache_service import reset_cache
from app.services.notification_service import NotificationService, NotificationRequest
from app.services.payment_gateway import PaymentGateway, PaymentIntent, GatewayRefund, GatewayCustomer

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


class RecordingNotifier(NotificationService):
    """Keeps every request instead of sending it."""

    def __init__(self):
        self.sent: List[NotificationRequest] = []

    async def send_notification(self, request: NotificationRequest) -> Dict[str, Any]:
        self.sent.append(request)
        return {"success": True}

    def titles(self) -> List[str]:
        return [r.title for r in self.sent]


class FailingNotifier(NotificationService):
    """Every send blows up, as an unreachable notification service would."""

    def __init__(self):
        self.attempts = 0

    async def send_notification(self, request: NotificationRequest) -> Dict[str, Any]:
        self.attempts += 1
        raise RuntimeError("notification service unreachable")


class FakeGateway(PaymentGateway):
    """In-process gateway. confirm_status decides how intents settle."""

    def __init__(self):
        self.confirm_status = "succeeded"
        self.fail_intents = False
        self.intents: List[Dict[str, Any]] = []
        self.refunds: List[Dict[str, Any]] = []

    async def get_or_create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayCustomer:
        return GatewayCustomer(id=f"cust_{email}", email=email, name=name)

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        customer_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        if self.fail_intents:
            raise ExternalServiceError("Payment gateway timed out during order creation")
        intent_id = f"order_{len(self.intents) + 1}"
        self.intents.append({"id": intent_id, "amount": amount, "currency": currency})
        return PaymentIntent(id=intent_id, status="requires_payment_method", client_secret=intent_id)

    async def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: Optional[str] = None,
    ) -> PaymentIntent:
        charge_id = f"pay_{intent_id}" if self.confirm_status == "succeeded" else None
        return PaymentIntent(id=intent_id, status=self.confirm_status, charge_id=charge_id)

    async def create_refund(
        self,
        charge_id: str,
        amount: Decimal,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayRefund:
        self.refunds.append({"charge_id": charge_id, "amount": amount})
        return GatewayRefund(id=f"rfnd_{len(self.refunds)}", status="succeeded")


@pytest.fixture(autouse=True)
def fresh_cache():
    """Membership settings and rate plans are cached process-wide."""
    reset_cache()
    yield
    reset_cache()


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def warehouse(test_db: AsyncSession) -> Warehouse:
    """
    Two pallet zones (100 and 60 slots) and one 50,000 sq ft hall on floor 3.
    """
    warehouse = Warehouse(name="Riverside DC", code="RDC-01", city="Austin")
    test_db.add(warehouse)
    await test_db.flush()

    test_db.add_all([
        WarehouseZone(warehouse_id=warehouse.id, name="Zone A", total_slots=100, available_slots=100),
        WarehouseZone(warehouse_id=warehouse.id, name="Zone B", total_slots=60, available_slots=60),
    ])
    floor = WarehouseFloor(warehouse_id=warehouse.id, floor_number=3, name="Third Floor")
    test_db.add(floor)
    await test_db.flush()
    test_db.add(WarehouseHall(
        floor_id=floor.id,
        name="Hall 3A",
        total_sq_ft=50000,
        available_sq_ft=50000,
        occupied_sq_ft=0,
    ))
    await test_db.commit()
    await test_db.refresh(warehouse)
    return warehouse


@pytest.fixture
def customer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_token():
    """Build a bearer header for an identity-platform user."""
    def _make(user_id: uuid.UUID, role: str = "customer", name: str = "Test User", email: Optional[str] = None):
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now,
            "jti": str(uuid.uuid4()),
            "type": "access",
            "role": role,
            "name": name,
            "email": email or f"{user_id.hex[:8]}@example.com",
        }
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, notifier: RecordingNotifier, gateway: FakeGateway):
    """Create test client with overridden database, notifier and gateway."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
