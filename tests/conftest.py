from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timezone
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tradepnl.api.deps import get_db_session
from tradepnl.core.security import RoleName, create_access_token
from tradepnl.main import app
from tradepnl.main import app as fastapi_app
from tradepnl.models import (
    Accrual,
    Base,
    Budget,
    Claim,
    Customer,
    Deduction,
    Promotion,
    Settlement,
    Tenant,
    TradeSpend,
)
from tradepnl.obs import AuditMiddleware

TENANT_ID = "tenant-demo"
OTHER_TENANT_ID = "tenant-other"
SPEND_TIME = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit middleware during tests."""

    exceptions = SimpleNamespace(NoSuchKey=type("NoSuchKey", (Exception,), {}))

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}

    def head_bucket(self, *, Bucket: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, *, Bucket: str, **_: object) -> None:
        self._buckets.setdefault(Bucket, {})

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, BytesIO]:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "NoSuchBucket"}}, "GetObject")
        bucket = self._buckets[Bucket]
        if Key not in bucket:
            raise self.exceptions.NoSuchKey()
        return {"Body": BytesIO(bucket[Key])}

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str | None = None,
        **_: object,
    ) -> dict[str, str]:
        bucket = self._buckets.setdefault(Bucket, {})
        if isinstance(Body, str):
            data = Body.encode("utf-8")
        else:
            data = Body
        bucket[Key] = data
        return {"ETag": "in-memory"}

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class FactSeeder:
    """Writes trade-promotion facts for a tenant straight into the test database."""

    def __init__(self, session: Session, tenant_id: str = TENANT_ID) -> None:
        self._session = session
        self.tenant_id = tenant_id

    def for_tenant(self, tenant_id: str) -> "FactSeeder":
        return FactSeeder(self._session, tenant_id)

    def _add(self, instance: object) -> None:
        self._session.add(instance)
        self._session.commit()

    def customer(self, name: str, customer_id: str | None = None) -> Customer:
        customer = Customer(tenant_id=self.tenant_id, name=name)
        if customer_id is not None:
            customer.id = customer_id
        self._add(customer)
        return customer

    def promotion(
        self,
        name: str,
        *,
        promotion_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = "active",
    ) -> Promotion:
        promotion = Promotion(
            tenant_id=self.tenant_id, name=name, start_date=start_date, end_date=end_date, status=status
        )
        if promotion_id is not None:
            promotion.id = promotion_id
        self._add(promotion)
        return promotion

    def spend(
        self,
        amount: str,
        *,
        customer_id: str | None = None,
        promotion_id: str | None = None,
        created_at: datetime = SPEND_TIME,
    ) -> TradeSpend:
        spend = TradeSpend(
            tenant_id=self.tenant_id,
            customer_id=customer_id,
            promotion_id=promotion_id,
            amount=Decimal(amount),
            created_at=created_at,
        )
        self._add(spend)
        return spend

    def accrual(
        self,
        accrued: str,
        *,
        customer_id: str | None = None,
        promotion_id: str | None = None,
    ) -> None:
        self._add(
            Accrual(
                tenant_id=self.tenant_id,
                customer_id=customer_id,
                promotion_id=promotion_id,
                accrued_amount=Decimal(accrued),
            )
        )

    def settlement(self, amount: str, *, customer_id: str | None = None, promotion_id: str | None = None) -> None:
        self._add(
            Settlement(
                tenant_id=self.tenant_id,
                customer_id=customer_id,
                promotion_id=promotion_id,
                settled_amount=Decimal(amount),
            )
        )

    def claim(self, amount: str, *, customer_id: str | None = None, promotion_id: str | None = None) -> None:
        self._add(
            Claim(
                tenant_id=self.tenant_id,
                customer_id=customer_id,
                promotion_id=promotion_id,
                claimed_amount=Decimal(amount),
            )
        )

    def deduction(self, amount: str, *, customer_id: str | None = None, promotion_id: str | None = None) -> None:
        self._add(
            Deduction(
                tenant_id=self.tenant_id,
                customer_id=customer_id,
                promotion_id=promotion_id,
                deduction_amount=Decimal(amount),
            )
        )

    def budget(self, amount: str, *, customer_id: str) -> None:
        self._add(Budget(tenant_id=self.tenant_id, customer_id=customer_id, amount=Decimal(amount)))


DATABASE_URL = "sqlite+pysqlite:///./test_suite.db"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(autouse=True)
def audit_s3_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryS3Client]:
    client = InMemoryS3Client()

    def _client_factory(*args: object, **kwargs: object) -> InMemoryS3Client:
        return client

    monkeypatch.setattr("tradepnl.obs.audit.boto3.client", _client_factory)
    stack = getattr(fastapi_app, "middleware_stack", None)
    middleware = getattr(stack, "app", None)
    while middleware is not None and hasattr(middleware, "app"):
        if isinstance(middleware, AuditMiddleware):
            middleware._s3_client = None
            middleware._bucket_ready = False
        middleware = getattr(middleware, "app", None)
    yield client


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    session.add_all(
        [
            Tenant(id=TENANT_ID, name="Demo Tenant"),
            Tenant(id=OTHER_TENANT_ID, name="Other Tenant"),
        ]
    )
    session.commit()

    yield session
    session.close()


@pytest.fixture()
def facts(db_session: Session) -> FactSeeder:
    return FactSeeder(db_session)


@pytest.fixture()
def client(db_session: Session, audit_s3_client: InMemoryS3Client) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_db_session] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)


def bearer_headers(*, tenant_id: str = TENANT_ID, role: RoleName = "ADMIN") -> dict[str, str]:
    token = create_access_token(subject="finance@example.com", tenant_id=tenant_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return bearer_headers()


@pytest.fixture()
def other_tenant_headers() -> dict[str, str]:
    return bearer_headers(tenant_id=OTHER_TENANT_ID)


@pytest.fixture()
def analyst_headers() -> dict[str, str]:
    return bearer_headers(role="ANALYST")
