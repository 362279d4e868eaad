"""API route tests"""
import pytest
from fastapi import status

from app.services.rcon_service import RconChannelError


@pytest.mark.high
class TestServiceEndpoints:
    """Test status, health and metrics endpoints"""

    def test_root_lists_endpoints(self, client):
        response = client.get("/")
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "online"
        assert body["endpoints"]["paypal_webhook"] == "/api/paypal-webhook"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "healthy"}

    def test_metrics_exposed(self, client):
        client.post("/api/redeem-voucher", json={"minecraft_nick": "Sam", "voucher_code": "VOUCHER-ZZZZ"})

        response = client.get("/metrics")
        assert response.status_code == status.HTTP_200_OK
        assert "rewards_voucher_redemptions_total" in response.text


@pytest.mark.critical
class TestPaymentWebhook:
    """Test /api/paypal-webhook"""

    def payload(self, **overrides):
        data = {
            "transaction_id": "PAY-100",
            "minecraft_nick": "Alex",
            "item_type": "VIP",
            "quantity": 1,
            "amount": "19.99",
            "payer_email": "alex@example.com",
        }
        data.update(overrides)
        return data

    def test_payment_grants_reward(self, client, fake_channel):
        response = client.post("/api/paypal-webhook", json=self.payload())

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["minecraft_nick"] == "Alex"
        assert fake_channel.sent == ["lp user Alex parent settemp vip 30d"]

    def test_redelivered_payment_is_duplicate(self, client, fake_channel):
        client.post("/api/paypal-webhook", json=self.payload())
        response = client.post("/api/paypal-webhook", json=self.payload())

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["duplicate"] is True
        assert len(fake_channel.sent) == 1

    def test_unknown_item_type_is_bad_request(self, client, ledger):
        response = client.post("/api/paypal-webhook", json=self.payload(item_type="Diamond Sword"))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Diamond Sword" in response.json()["detail"]

    def test_missing_fields_rejected(self, client):
        response = client.post("/api/paypal-webhook", json={"transaction_id": "PAY-100"})
        assert response.status_code == 422

    def test_dispatch_failure_returns_bad_gateway(self, client, fake_channel):
        fake_channel.connect_error = RconChannelError("connection", "refused")

        response = client.post("/api/paypal-webhook", json=self.payload())

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        body = response.json()
        assert body["success"] is False
        assert body["status"] == "failed"


@pytest.mark.critical
class TestVoucherEndpoints:
    """Test voucher issuance and redemption routes"""

    def test_create_voucher_requires_admin_key(self, client, admin_key):
        response = client.post(
            "/api/create-voucher",
            json={"item_type": "VIP", "quantity": 1, "admin_key": "wrong"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_create_voucher(self, client, admin_key):
        response = client.post(
            "/api/create-voucher",
            json={"item_type": "Klucz Epicki", "quantity": 3, "admin_key": admin_key}
        )

        assert response.status_code == status.HTTP_200_OK
        voucher = response.json()["voucher"]
        assert voucher["code"].startswith("VOUCHER-")
        assert voucher["item_type"] == "Klucz Epicki"
        assert voucher["quantity"] == 3
        assert voucher["redeemed"] is False

    def test_create_voucher_defaults_quantity(self, client, admin_key):
        response = client.post(
            "/api/create-voucher",
            json={"item_type": "VIP", "admin_key": admin_key}
        )
        assert response.json()["voucher"]["quantity"] == 1

    def test_create_voucher_unknown_item_type(self, client, admin_key):
        response = client.post(
            "/api/create-voucher",
            json={"item_type": "Klucz Zloty", "admin_key": admin_key}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_redeem_voucher_flow(self, client, admin_key, fake_channel):
        created = client.post(
            "/api/create-voucher",
            json={"item_type": "Klucz Epicki", "quantity": 3, "admin_key": admin_key}
        ).json()["voucher"]

        response = client.post(
            "/api/redeem-voucher",
            json={"minecraft_nick": "Sam", "voucher_code": created["code"]}
        )
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        assert body["reward"] == "Klucz Epicki x3"
        assert fake_channel.sent == ["crate give physical epic 3 Sam"]

        again = client.post(
            "/api/redeem-voucher",
            json={"minecraft_nick": "Alex", "voucher_code": created["code"]}
        )
        assert again.status_code == status.HTTP_200_OK
        assert again.json()["success"] is False
        assert again.json()["reason"] == "already_redeemed"

    def test_redeem_unknown_code(self, client, fake_channel):
        response = client.post(
            "/api/redeem-voucher",
            json={"minecraft_nick": "Sam", "voucher_code": "VOUCHER-ZZZZ"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is False
        assert response.json()["reason"] == "not_found"
        assert fake_channel.sent == []

    def test_redeem_dispatch_failure_returns_bad_gateway(self, client, admin_key, fake_channel):
        created = client.post(
            "/api/create-voucher",
            json={"item_type": "VIP", "admin_key": admin_key}
        ).json()["voucher"]
        fake_channel.connect_error = RconChannelError("connection", "refused")

        response = client.post(
            "/api/redeem-voucher",
            json={"minecraft_nick": "Sam", "voucher_code": created["code"]}
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["reason"] == "dispatch_failed"


@pytest.mark.high
class TestAdminEndpoints:
    """Test reporting and RCON check routes"""

    def test_transactions_require_admin_key(self, client, admin_key):
        response = client.get("/api/transactions")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_transactions(self, client, admin_key):
        client.post("/api/paypal-webhook", json={
            "transaction_id": "PAY-1", "minecraft_nick": "Alex", "item_type": "VIP"
        })

        response = client.get("/api/transactions", headers={"X-Admin-Key": admin_key})

        assert response.status_code == status.HTTP_200_OK
        transactions = response.json()
        assert len(transactions) == 1
        assert transactions[0]["transaction_id"] == "PAY-1"
        assert transactions[0]["status"] == "completed"

    def test_list_vouchers(self, client, admin_key):
        client.post("/api/create-voucher", json={"item_type": "VIP", "admin_key": admin_key})

        response = client.get("/api/vouchers", headers={"X-Admin-Key": admin_key})

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 1

    def test_rcon_check_requires_admin_key(self, client, admin_key, fake_channel):
        response = client.get("/api/test-rcon")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert fake_channel.sent == []

    def test_rcon_check(self, client, admin_key, fake_channel):
        response = client.get("/api/test-rcon", headers={"X-Admin-Key": admin_key})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True
        assert fake_channel.sent == ["list"]

    def test_rcon_check_failure(self, client, admin_key, fake_channel):
        fake_channel.connect_error = RconChannelError("auth", "password rejected")

        response = client.get("/api/test-rcon", headers={"X-Admin-Key": admin_key})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
