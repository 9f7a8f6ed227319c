from fastapi.testclient import TestClient

from app.main import app


def test_unknown_route_uses_error_envelope() -> None:
    client = TestClient(app)

    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found", "code": "E_NOT_FOUND"}


def test_request_body_validation_maps_to_400() -> None:
    client = TestClient(app)

    response = client.post("/referrals", json={"referrerId": 1})

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert payload["code"] == "E_VALIDATION"
    assert "referredId" in payload["error"]


def test_page_limit_above_maximum_is_rejected() -> None:
    client = TestClient(app)

    response = client.get("/referrals", params={"limit": 101})

    assert response.status_code == 400
    assert response.json()["code"] == "E_VALIDATION"


def test_negative_purchase_amount_is_rejected_before_ingestion() -> None:
    client = TestClient(app)

    response = client.post(
        "/referrals/purchase-events",
        json={
            "eventId": "evt-negative",
            "userId": 7,
            "subscriptionId": "sub-7",
            "amount": "-1.00",
            "timestamp": "2026-03-01T12:00:00Z",
        },
    )

    assert response.status_code == 400
    assert response.json()["code"] == "E_VALIDATION"


def test_unknown_payout_status_is_rejected() -> None:
    client = TestClient(app)

    response = client.post("/partners/1/payouts/1/process", json={"status": "pending"})

    assert response.status_code == 400
    assert response.json()["code"] == "E_VALIDATION"
