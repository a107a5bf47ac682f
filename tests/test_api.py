from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from storefront.api.main import app, get_repository
from storefront.config import settings
from storefront.redeem import InMemoryRedeemCodeRepository, StorageUnavailableError
from tests.conftest import ADMIN_TOKEN

ADMIN_HEADERS = {"X-Admin-Token": ADMIN_TOKEN, "X-Admin-Id": "alice"}

DOWNLOAD = {"downloadUrl": "https://cdn.example.com/pack.zip", "fileName": "pack.zip"}


@pytest.fixture
def repo():
    return InMemoryRedeemCodeRepository()


@pytest.fixture
def client(repo, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    app.dependency_overrides[get_repository] = lambda: repo
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def create_code(client: TestClient, **fields) -> dict:
    body = {"code": "SAVE20", "type": "download", "value": DOWNLOAD, "productId": "P1"}
    body.update(fields)
    resp = client.post("/api/admin/redeem-codes", json=body, headers=ADMIN_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


# -------------------------------------------------------------------
# /api/redeem
# -------------------------------------------------------------------


def test_redeem_success(client):
    create_code(client, code="SAVE20", productId="P1")

    resp = client.post("/api/redeem", json={"code": "save20", "productId": "P1"})

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "Code redeemed successfully!",
        "downloadUrl": "https://cdn.example.com/pack.zip",
        "fileName": "pack.zip",
        "codeType": "product",
    }


def test_redeem_master_code_type(client):
    create_code(client, code="MASTER1", productId=None, isMasterCode=True)

    resp = client.post("/api/redeem", json={"code": "MASTER1", "productId": "ANY"})

    assert resp.status_code == 200
    assert resp.json()["codeType"] == "master"


def test_redeem_unknown_code_is_404(client):
    resp = client.post("/api/redeem", json={"code": "NOPE", "productId": "P1"})

    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "message": "Invalid redeem code. Please check the code and try again.",
        "reason": "not_found",
    }


@pytest.mark.parametrize(
    "fields, product_id, reason",
    [
        ({"isActive": False}, "P1", "inactive"),
        ({"expiresAt": "2000-01-01T00:00:00Z"}, "P1", "expired"),
        ({}, "P2", "scope_mismatch"),
    ],
)
def test_redeem_rejections_are_400(client, fields, product_id, reason):
    create_code(client, **fields)

    resp = client.post("/api/redeem", json={"code": "SAVE20", "productId": product_id})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["reason"] == reason


def test_redeem_usage_limit_is_400(client):
    create_code(client, usageLimit=1)

    assert client.post("/api/redeem", json={"code": "SAVE20", "productId": "P1"}).status_code == 200
    resp = client.post("/api/redeem", json={"code": "SAVE20", "productId": "P1"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "This code has reached its usage limit."


@pytest.mark.parametrize(
    "body",
    [
        {"code": "SAVE20"},
        {"productId": "P1"},
        {"code": "   ", "productId": "P1"},
        {"code": "SAVE20", "productId": ""},
    ],
)
def test_redeem_requires_code_and_product(client, body):
    resp = client.post("/api/redeem", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Code and product ID are required"}


@pytest.mark.parametrize(
    "body",
    [
        {"code": "X" * 101, "productId": "P1"},
        {"code": "SAVE20", "productId": "P" * 101},
    ],
)
def test_redeem_reports_too_long_fields(client, body):
    resp = client.post("/api/redeem", json=body)

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "message": "Code and product ID must be at most 100 characters",
    }


def test_redeem_storage_failure_is_503(client):
    class BrokenRepository:
        async def find_by_code(self, code):
            raise StorageUnavailableError("connection refused")

    app.dependency_overrides[get_repository] = lambda: BrokenRepository()

    resp = client.post("/api/redeem", json={"code": "SAVE20", "productId": "P1"})

    assert resp.status_code == 503
    assert resp.json()["success"] is False


# -------------------------------------------------------------------
# Админка
# -------------------------------------------------------------------


def test_admin_requires_token(client):
    resp = client.get("/api/admin/redeem-codes")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Admin authentication required"}
    assert client.get("/api/admin/redeem-codes", headers={"X-Admin-Token": "wrong"}).status_code == 401


def test_admin_closed_when_token_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", "")

    resp = client.get("/api/admin/redeem-codes", headers=ADMIN_HEADERS)

    assert resp.status_code == 500
    assert resp.json() == {"message": "admin_token_not_configured"}


def test_create_returns_server_controlled_fields(client):
    body = create_code(client, code=" new1 ", usageLimit=3)

    assert body["code"] == "NEW1"
    assert body["usageCount"] == 0
    assert body["usageLimit"] == 3
    assert body["createdBy"] == "alice"
    assert body["isMasterCode"] is False
    assert body["productId"] == "P1"
    assert body["value"] == DOWNLOAD
    assert body["id"]


def test_create_rejects_usage_count(client):
    resp = client.post(
        "/api/admin/redeem-codes",
        json={"code": "X1", "value": DOWNLOAD, "productId": "P1", "usageCount": 3},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 400
    assert "usageCount" in resp.json()["errors"]


def test_create_validation_errors(client):
    resp = client.post(
        "/api/admin/redeem-codes",
        json={"code": "BAD", "value": {"downloadUrl": "https://x"}, "isMasterCode": True, "productId": "P1"},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Invalid redeem code data"
    assert set(body["errors"]) == {"productId", "value.fileName"}


def test_create_duplicate(client):
    create_code(client, code="DUP")

    resp = client.post(
        "/api/admin/redeem-codes",
        json={"code": "dup", "value": DOWNLOAD, "isMasterCode": True},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 400
    assert "code" in resp.json()["errors"]


def test_listing_endpoints(client):
    p1 = create_code(client, code="P1CODE", productId="P1")
    p2 = create_code(client, code="P2CODE", productId="P2")
    master = create_code(client, code="MASTER", productId=None, isMasterCode=True)

    all_ids = {c["id"] for c in client.get("/api/admin/redeem-codes", headers=ADMIN_HEADERS).json()}
    assert all_ids == {p1["id"], p2["id"], master["id"]}

    by_product = client.get("/api/admin/redeem-codes/product/P2", headers=ADMIN_HEADERS).json()
    assert [c["id"] for c in by_product] == [p2["id"]]

    masters = client.get("/api/admin/redeem-codes/master", headers=ADMIN_HEADERS).json()
    assert [c["id"] for c in masters] == [master["id"]]

    by_code = client.get("/api/admin/redeem-codes/by-code", params={"code": "p1code"}, headers=ADMIN_HEADERS)
    assert by_code.json()["id"] == p1["id"]

    single = client.get(f"/api/admin/redeem-codes/{p1['id']}", headers=ADMIN_HEADERS)
    assert single.json()["code"] == "P1CODE"


def test_get_missing_is_404(client):
    resp = client.get("/api/admin/redeem-codes/nope", headers=ADMIN_HEADERS)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Redeem code not found"}
    resp = client.get("/api/admin/redeem-codes/by-code", params={"code": "NOPE"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 404


def test_suggest(client):
    resp = client.get("/api/admin/redeem-codes/suggest", params={"prefix": "sale-"}, headers=ADMIN_HEADERS)

    assert resp.status_code == 200
    assert resp.json()["code"].startswith("SALE-")


def test_update(client):
    created = create_code(client, usageLimit=5)

    resp = client.put(
        f"/api/admin/redeem-codes/{created['id']}",
        json={"code": "renamed", "usageLimit": None, "isActive": False},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "RENAMED"
    assert body["usageLimit"] is None
    assert body["isActive"] is False
    assert body["productId"] == "P1"


def test_update_rejects_usage_count(client):
    created = create_code(client)

    resp = client.put(
        f"/api/admin/redeem-codes/{created['id']}",
        json={"usageCount": 0},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 400


def test_update_missing_is_404(client):
    resp = client.put("/api/admin/redeem-codes/nope", json={"isActive": False}, headers=ADMIN_HEADERS)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Redeem code not found"}


def test_redemptions_and_delete(client):
    created = create_code(client, code="TRACK", productId=None, isMasterCode=True)
    client.post("/api/redeem", json={"code": "TRACK", "productId": "A"})
    client.post("/api/redeem", json={"code": "TRACK", "productId": "B"})

    entries = client.get(f"/api/admin/redeem-codes/{created['id']}/redemptions", headers=ADMIN_HEADERS).json()
    assert [e["productId"] for e in entries] == ["A", "B"]

    fetched = client.get(f"/api/admin/redeem-codes/{created['id']}", headers=ADMIN_HEADERS).json()
    assert fetched["usageCount"] == 2

    resp = client.delete(f"/api/admin/redeem-codes/{created['id']}", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Redeem code deleted successfully"}

    assert client.delete(f"/api/admin/redeem-codes/{created['id']}", headers=ADMIN_HEADERS).status_code == 404
    missing = client.get(f"/api/admin/redeem-codes/{created['id']}/redemptions", headers=ADMIN_HEADERS)
    assert missing.status_code == 404
