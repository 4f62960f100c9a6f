import pytest
from fastapi.testclient import TestClient

from gateway_router.config import Settings
from gateway_router.main import create_app
from gateway_router.models import GatewayDescriptor

CARD = {
    "type": "card",
    "card_number": "4111111111111111",
    "expiry": "12/25",
    "cvv": "123",
}


@pytest.fixture
def client():
    return TestClient(create_app(Settings()))


def initiate(client: TestClient, order_id: str = "ORD123", **overrides):
    payload = {"order_id": order_id, "amount": 499.0, "payment_instrument": CARD, **overrides}
    return client.post("/transactions/initiate", json=payload)


class TestServiceInfo:

    def test_root(self, client):
        data = client.get("/").json()
        assert data["name"] == "Payment Gateway Router"
        assert data["endpoints"]["initiate"] == "POST /transactions/initiate"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["uptime"] >= 0
        assert "timestamp" in data


class TestGatewayEndpoints:

    def test_list_gateways(self, client):
        data = client.get("/gateways").json()
        names = [g["name"] for g in data["gateways"]]
        assert names == ["razorpay", "payu", "cashfree"]
        assert data["gateways"][0]["weight"] == 50
        assert data["gateways"][0]["health"]["is_healthy"] is True

    def test_gateway_health(self, client):
        data = client.get("/gateways/razorpay/health").json()
        assert data["name"] == "razorpay"
        assert data["success_rate"] == 1.0
        assert data["total_requests"] == 0

    def test_unknown_gateway_404(self, client):
        assert client.get("/gateways/stripe/health").status_code == 404
        assert client.post("/gateways/stripe/disable").status_code == 404

    def test_disable_and_enable(self, client):
        resp = client.post("/gateways/payu/disable", json={"minutes": 10})
        assert resp.status_code == 200
        assert resp.json()["health"]["is_healthy"] is False
        assert resp.json()["health"]["disabled_until"] is not None

        resp = client.post("/gateways/payu/enable")
        assert resp.json()["health"]["is_healthy"] is True

    def test_disable_without_body_uses_cooldown(self, client):
        resp = client.post("/gateways/payu/disable")
        assert resp.status_code == 200
        assert resp.json()["health"]["is_healthy"] is False

    def test_reset_and_prune(self, client):
        client.post("/gateways/payu/disable")
        assert client.post("/gateways/reset").json()["success"] is True
        assert client.get("/gateways/payu/health").json()["is_healthy"] is True
        assert client.post("/gateways/prune").json() == {"success": True, "removed": 0}


class TestTransactionFlow:

    def test_initiate(self, client):
        resp = initiate(client)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["order_id"] == "ORD123"
        assert data["status"] == "pending"
        assert data["currency"] == "INR"
        assert data["gateway"] in {"razorpay", "payu", "cashfree"}
        assert "effective probability" in data["gateway_selection_reason"]

    def test_stored_instrument_is_sanitized(self, client):
        txn_id = initiate(client).json()["data"]["transaction_id"]
        instrument = client.get(f"/transactions/{txn_id}").json()["data"]["payment_instrument"]
        assert instrument["card_number"] == "****1111"
        assert "cvv" not in instrument

    def test_duplicate_pending_order_conflict(self, client):
        initiate(client)
        resp = initiate(client)
        assert resp.status_code == 409
        assert resp.json()["error"] == "DuplicatePendingOrder"

    def test_callback_success(self, client):
        gateway = initiate(client).json()["data"]["gateway"]
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "ORD123", "status": "success", "gateway": gateway},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "success"
        assert resp.json()["message"] == "Transaction completed"

        health = client.get(f"/gateways/{gateway}/health").json()
        assert health["total_requests"] == 1

    def test_callback_failure_with_reason(self, client):
        gateway = initiate(client).json()["data"]["gateway"]
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "ORD123", "status": "failure", "gateway": gateway, "reason": "Card declined"},
        )
        assert resp.json()["data"]["failure_reason"] == "Card declined"
        assert resp.json()["message"] == "Transaction failed"

    def test_callback_gateway_mismatch(self, client):
        gateway = initiate(client).json()["data"]["gateway"]
        other = next(n for n in ("razorpay", "payu", "cashfree") if n != gateway)
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "ORD123", "status": "success", "gateway": other},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "GatewayMismatch"
        assert client.get("/transactions/order/ORD123").json()["data"]["status"] == "pending"

    def test_callback_unknown_gateway(self, client):
        initiate(client)
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "ORD123", "status": "success", "gateway": "stripe"},
        )
        assert resp.status_code == 400

    def test_callback_unknown_order(self, client):
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "missing", "status": "success", "gateway": "payu"},
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "TransactionNotFound"

    def test_duplicate_callback_conflict(self, client):
        gateway = initiate(client).json()["data"]["gateway"]
        body = {"order_id": "ORD123", "status": "success", "gateway": gateway}
        client.post("/transactions/callback", json=body)
        resp = client.post("/transactions/callback", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"] == "AlreadyProcessed"

    def test_lookups_and_listing(self, client):
        initiate(client, "ORD1")
        initiate(client, "ORD2")

        listing = client.get("/transactions").json()
        assert listing["count"] == 2
        assert client.get("/transactions/order/ORD1").json()["data"]["order_id"] == "ORD1"
        assert client.get("/transactions/unknown").status_code == 404
        assert client.get("/transactions/order/unknown").status_code == 404

    def test_stats_summary(self, client):
        initiate(client, "ORD1")
        data = client.get("/transactions/stats/summary").json()["data"]
        assert data["total"] == 1
        assert data["pending"] == 1
        assert sum(g["total"] for g in data["by_gateway"].values()) == 1

    def test_reset(self, client):
        initiate(client, "ORD1")
        client.post("/transactions/reset")
        assert client.get("/transactions").json()["count"] == 0

    def test_no_gateway_available(self, client):
        for name in ("razorpay", "payu", "cashfree"):
            client.post(f"/gateways/{name}/disable")
        resp = initiate(client)
        assert resp.status_code == 503
        assert resp.json()["error"] == "NoHealthyGateway"


class TestValidation:

    def test_rejects_non_positive_amount(self, client):
        assert initiate(client, amount=0).status_code == 422

    def test_rejects_missing_payment_instrument(self, client):
        resp = client.post("/transactions/initiate", json={"order_id": "ORD1", "amount": 10})
        assert resp.status_code == 422

    def test_rejects_bad_card_number(self, client):
        resp = initiate(client, payment_instrument={"type": "card", "card_number": "4111"})
        assert resp.status_code == 422

    def test_rejects_lowercase_currency(self, client):
        assert initiate(client, currency="usd").status_code == 422

    def test_rejects_invalid_callback_status(self, client):
        resp = client.post(
            "/transactions/callback",
            json={"order_id": "ORD1", "status": "maybe", "gateway": "payu"},
        )
        assert resp.status_code == 422


class TestCircuitBreakerOverHttp:

    def test_failed_callbacks_disable_gateway(self):
        client = TestClient(
            create_app(Settings(gateways=[GatewayDescriptor(name="razorpay", weight=100),
                                          GatewayDescriptor(name="payu", weight=0)]))
        )
        for i in range(5):
            initiate(client, f"ORD{i}")
            client.post(
                "/transactions/callback",
                json={"order_id": f"ORD{i}", "status": "failure", "gateway": "razorpay"},
            )

        health = client.get("/gateways/razorpay/health").json()
        assert health["is_healthy"] is False
        assert health["failure_count"] == 5
        assert initiate(client, "ORD-next").status_code == 503

        client.post("/gateways/razorpay/enable")
        assert initiate(client, "ORD-next").status_code == 201


class TestSimulation:

    def test_outage_recover_and_settle(self, client):
        resp = client.post("/simulate/outage/payu")
        assert resp.json()["success_rate"] == 0.1
        resp = client.post("/simulate/recover/payu")
        assert resp.json()["success_rate"] == 0.95

        initiate(client, "ORD1")
        settled = client.post("/simulate/settle/ORD1").json()["data"]
        assert settled["status"] in {"success", "failure"}

    def test_unknown_gateway(self, client):
        assert client.post("/simulate/outage/stripe").status_code == 404

    def test_settle_unknown_order(self, client):
        assert client.post("/simulate/settle/missing").status_code == 404

    def test_reset(self, client):
        initiate(client, "ORD1")
        client.post("/simulate/reset")
        assert client.get("/transactions").json()["count"] == 0

    def test_simulated_success_rate_comes_from_settings(self):
        app = create_app(Settings(simulated_success_rate=1.0))
        client = TestClient(app)
        for i in range(20):
            initiate(client, f"ORD{i}")
            assert client.post(f"/simulate/settle/ORD{i}").json()["data"]["status"] == "success"
        assert app.state.simulator.get("payu").base_success_rate == 1.0
