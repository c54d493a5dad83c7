from collections.abc import Iterator
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from jose import jwt

from tradepnl.core.config import Settings, get_settings
from tradepnl.core.security import InvalidTokenError, create_access_token, decode_access_token
from tradepnl.main import create_application

if TYPE_CHECKING:
    from fastapi.testclient import TestClient

TENANT_ID = "tenant-demo"


@pytest.fixture()
def client() -> Iterator["TestClient"]:
    pytest.importorskip("fastapi")
    from fastapi.testclient import TestClient

    settings = Settings(audit_log_sample_rate=0, enable_tracing=False, enable_metrics=False)
    with TestClient(create_application(settings)) as test_client:
        yield test_client


def test_access_token_is_signed_with_tenant_claims() -> None:
    token = create_access_token(subject="finance@example.com", tenant_id=TENANT_ID, role="FINANCE")

    settings = get_settings()
    payload = jwt.decode(token, settings.jwt_private_key, algorithms=[settings.jwt_algorithm])

    assert payload["sub"] == "finance@example.com"
    assert payload["tid"] == TENANT_ID
    assert payload["role"] == "FINANCE"
    assert payload["type"] == "access"


def test_decode_round_trips_user() -> None:
    token = create_access_token(subject="analyst@example.com", tenant_id=TENANT_ID, role="ANALYST")

    user = decode_access_token(token)

    assert user.email == "analyst@example.com"
    assert user.tenant_id == TENANT_ID
    assert user.role == "ANALYST"


def test_expired_token_is_rejected() -> None:
    token = create_access_token(
        subject="finance@example.com",
        tenant_id=TENANT_ID,
        expires_delta=timedelta(seconds=-30),
    )

    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_unknown_role_cannot_be_issued() -> None:
    with pytest.raises(ValueError):
        create_access_token(subject="x@example.com", tenant_id=TENANT_ID, role="EMPLOYEE")  # type: ignore[arg-type]


def test_options_require_a_valid_token(client: "TestClient") -> None:
    token = create_access_token(subject="analyst@example.com", tenant_id=TENANT_ID, role="ANALYST")

    authorised = client.get("/api/pnl/options", headers={"Authorization": f"Bearer {token}"})
    assert authorised.status_code == 200

    tampered = client.get("/api/pnl/options", headers={"Authorization": f"Bearer {token}x"})
    assert tampered.status_code == 401
