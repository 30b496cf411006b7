"""Pytest fixtures for testing"""

import json
import pytest
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from rentease_ledger.api.dependencies import get_clock, get_payment_gateway, get_signing_client
from rentease_ledger.api.main import create_app
from rentease_ledger.domain.exceptions import GatewayError, ValidationError
from rentease_ledger.domain.models import PaymentEvent, PaymentIntent, Role, SigningSubmission
from rentease_ledger.infrastructure.clients.payments import PaymentGateway
from rentease_ledger.infrastructure.database.models import Base, User
from rentease_ledger.infrastructure.database.repositories import ShopItemRepository, UserRepository
from rentease_ledger.infrastructure.database.session import get_db, get_session_factory, transaction
from rentease_ledger.services.bills import BillService
from rentease_ledger.services.budgets import BudgetService, ExpenseService
from rentease_ledger.services.rent_plans import PlanTerms, RentPlanService
from rentease_ledger.services.rewards import RewardService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock the tests move by hand"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePaymentGateway(PaymentGateway):
    """In-memory processor: hands out sequential intent ids, parses plain JSON events"""

    def __init__(self):
        self.intents: List[Dict] = []
        self.fail = False

    def create_intent(self, amount_minor_units, purpose_label, metadata, success_url, cancel_url, description=None):
        if self.fail:
            raise GatewayError("Payment processor unavailable")
        intent_id = f"cs_test_{len(self.intents) + 1}"
        self.intents.append(
            {
                "intent_id": intent_id,
                "amount_minor_units": amount_minor_units,
                "purpose_label": purpose_label,
                "metadata": dict(metadata),
            }
        )
        return PaymentIntent(intent_id=intent_id, redirect_url=f"https://checkout.test/{intent_id}")

    def parse_event(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if signature == "invalid":
            raise ValidationError("Invalid webhook signature")
        data = json.loads(payload)
        return PaymentEvent(
            event_id=data["id"],
            event_type=data["type"],
            intent_id=data.get("intent_id"),
            metadata=data.get("metadata", {}),
            raw=data,
        )


class FakeSigningClient:
    """Stands in for DocuSealClient; records what was sent"""

    def __init__(self):
        self.sent: List[Dict] = []
        self.fail = False

    async def send_for_signature(self, document, signer_email, signer_name, document_name="Rent Plan Agreement"):
        if self.fail:
            raise GatewayError("DocuSeal error: 503")
        self.sent.append({"email": signer_email, "name": signer_name, "document_name": document_name})
        return SigningSubmission(
            submission_id=str(1000 + len(self.sent)),
            submitter_id=str(2000 + len(self.sent)),
            signing_url=f"https://docuseal.com/s/slug{len(self.sent)}",
        )


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def signing_client() -> FakeSigningClient:
    return FakeSigningClient()


@pytest.fixture
def client(db: Session, clock: FixedClock, gateway: FakePaymentGateway, signing_client: FakeSigningClient) -> TestClient:
    """Create FastAPI test client with test database and fake external services"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_signing_client] = lambda: signing_client
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    return TestClient(app)


@pytest.fixture
def make_user(db: Session):
    """Factory for committed users"""
    counter = {"n": 0}

    def _make(role: Role, username: Optional[str] = None, points: int = 0) -> User:
        counter["n"] += 1
        username = username or f"{role.value}{counter['n']}"
        with transaction(db):
            user = UserRepository(db).create(
                name=username.title(),
                email=f"{username}@example.com",
                username=username,
                role=role,
                points=points,
            )
        return user

    return _make


@pytest.fixture
def landlord(make_user) -> User:
    return make_user(Role.LANDLORD, "lara")


@pytest.fixture
def tenant(make_user) -> User:
    return make_user(Role.TENANT, "tom")


@pytest.fixture
def plan_service(db: Session, gateway: FakePaymentGateway, clock: FixedClock) -> RentPlanService:
    return RentPlanService(db, gateway=gateway, clock=clock)


@pytest.fixture
def bill_service(db: Session, gateway: FakePaymentGateway, clock: FixedClock) -> BillService:
    return BillService(db, gateway=gateway, clock=clock)


@pytest.fixture
def reward_service(db: Session, clock: FixedClock) -> RewardService:
    return RewardService(db, clock=clock)


@pytest.fixture
def budget_service(db: Session, clock: FixedClock) -> BudgetService:
    return BudgetService(db, clock=clock)


@pytest.fixture
def expense_service(db: Session, clock: FixedClock) -> ExpenseService:
    return ExpenseService(db, clock=clock)


@pytest.fixture
def default_terms() -> PlanTerms:
    return PlanTerms(
        monthly_rent_cents=120000,
        deposit_cents=240000,
        duration_months=12,
        description="Flat 2B",
        start_date=date(2024, 4, 1),
    )


@pytest.fixture
def linked_tenant(plan_service: RentPlanService, landlord: User, tenant: User, default_terms: PlanTerms) -> User:
    """Tenant who accepted a plan from `landlord`, so bills can be issued to them"""
    plan = plan_service.propose(landlord, default_terms, tenant_id=tenant.id)
    plan_service.accept(tenant, plan.id)
    return tenant


@pytest.fixture
def shop_item(db: Session):
    with transaction(db):
        item = ShopItemRepository(db).create(name="Coffee voucher", point_cost=50, description="One free coffee")
    return item


@pytest.fixture
def session_factory():
    """Independent sessions, as background tasks and concurrent writers get"""
    return TestingSessionLocal


@pytest.fixture
def make_event():
    """Factory for normalized payment events"""

    def _make(event_id: str, intent_id: Optional[str], event_type: str = "payment.completed", **metadata) -> PaymentEvent:
        return PaymentEvent(
            event_id=event_id,
            event_type=event_type,
            intent_id=intent_id,
            metadata={k: str(v) for k, v in metadata.items()},
            raw={"id": event_id, "type": event_type},
        )

    return _make


@pytest.fixture
def auth():
    """Identity header the upstream auth layer forwards"""

    def _auth(user: User) -> Dict[str, str]:
        return {"X-User-ID": str(user.id)}

    return _auth
