from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app.api.routes import purchases
from app.api.routes.route_helpers import ACCOUNT_COOKIE_MAX_AGE_SECONDS
from app.economy.purchases.errors import PaymentReferenceRequiredError
from app.economy.purchases.state_machine import PurchaseAttempt
from app.identity.types import RegistrationResult
from app.main import app
from app.services.visitor_session import ACCOUNT_SESSION_COOKIE, VISITOR_SESSION_COOKIE

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def test_start_purchase_issues_visitor_cookie(monkeypatch) -> None:
    captured: list[object] = []

    async def _fake_start(visitor, product_id: int):
        captured.append(visitor)
        return PurchaseAttempt(
            attempt_id="attempt-1",
            visitor_key=visitor.visitor_key,
            product_id=product_id,
            step="REGISTERING",
            created_at=NOW_UTC,
            updated_at=NOW_UTC,
        )

    monkeypatch.setattr(purchases.PurchaseService, "start_attempt", _fake_start)

    client = TestClient(app)
    response = client.post(
        "/purchases",
        json={"product_id": 7},
        headers={"X-Device-Fingerprint": "fp-1"},
    )

    assert response.status_code == 200
    assert response.json()["step"] == "REGISTERING"
    assert VISITOR_SESSION_COOKIE in response.cookies
    assert captured[0].fingerprint == "fp-1"
    assert captured[0].account_id is None


def test_empty_upi_reference_is_a_validation_error(monkeypatch) -> None:
    async def _fake_submit(visitor, attempt_id: str, reference: str):
        assert reference == ""
        raise PaymentReferenceRequiredError("Enter the UTR / transaction ID from your payment app.")

    monkeypatch.setattr(purchases.PurchaseService, "submit_upi_reference", _fake_submit)

    client = TestClient(app)
    response = client.post("/purchases/attempt-1/upi-reference", json={})

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "E_VALIDATION"


def test_order_status_requires_account_session() -> None:
    client = TestClient(app)
    response = client.get("/orders/1")

    assert response.status_code == 401


def test_purchase_registration_sets_persistent_account_cookie(monkeypatch) -> None:
    async def _fake_register(visitor, attempt_id: str, real_id: str):
        attempt = PurchaseAttempt(
            attempt_id=attempt_id,
            visitor_key=visitor.visitor_key,
            product_id=7,
            step="DETAILS_CONFIRMATION",
            created_at=NOW_UTC,
            updated_at=NOW_UTC,
            account_id=4,
        )
        return attempt, RegistrationResult(
            account_id=4,
            real_id=real_id,
            created=True,
            promotion=None,
        )

    monkeypatch.setattr(purchases.PurchaseService, "register", _fake_register)

    client = TestClient(app)
    response = client.post("/purchases/attempt-1/register", json={"real_id": "1000001"})

    assert response.status_code == 200
    account_cookie = next(
        header
        for header in response.headers.get_list("set-cookie")
        if header.startswith(f"{ACCOUNT_SESSION_COOKIE}=")
    )
    assert f"Max-Age={ACCOUNT_COOKIE_MAX_AGE_SECONDS}" in account_cookie
