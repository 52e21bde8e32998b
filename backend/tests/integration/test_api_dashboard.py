"""Integration tests for the dashboard and asset list endpoints."""

from decimal import Decimal

from tests.fixtures import create_asset


def test_dashboard_empty(client, categories):
    response = client.get("/api/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["netWorth"]) == 0
    assert len(body["categories"]) == 6


def test_dashboard_totals(client, db, categories):
    create_asset(db, "Brokerage", "1000", categories["investments"])
    create_asset(db, "Card", "250", categories["debt"], is_liability=True)

    body = client.get("/api/dashboard").json()

    assert Decimal(body["totalAssets"]) == Decimal("1000")
    assert Decimal(body["totalLiabilities"]) == Decimal("250")
    assert Decimal(body["netWorth"]) == Decimal("750")
    debt = next(c for c in body["categories"] if c["slug"] == "debt")
    assert Decimal(debt["total"]) == Decimal("-250")
    assert debt["assetCount"] == 1


def test_dashboard_has_no_snaptrade_cache_headers(client, categories):
    response = client.get("/api/dashboard")

    assert "Pragma" not in response.headers


def test_list_assets_after_callback(client, connection, categories):
    client.post("/api/snaptrade/callback", json={"authorizationId": "auth_001"})

    response = client.get("/api/assets")

    assert response.status_code == 200
    assets = response.json()
    assert sorted(a["name"] for a in assets) == ["AAPL", "Cash (USD)", "GOOGL", "VTI"]
    aapl = next(a for a in assets if a["name"] == "AAPL")
    assert aapl["category"]["slug"] == "investments"
    assert aapl["metadata"]["symbol"] == "AAPL"
    assert aapl["isLiability"] is False
    assert Decimal(aapl["value"]) == Decimal("1500")


def test_dashboard_requires_authentication(anonymous_client):
    assert anonymous_client.get("/api/dashboard").status_code == 401
