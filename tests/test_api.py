"""HTTP surface: auth, error envelope and the order-to-subscription flow."""
from datetime import timedelta
from decimal import Decimal

from aquarent.api.deps import get_payment_gateway
from aquarent.database import utcnow
from aquarent.main import app
from aquarent.services import payment_service


async def place_order(client, auth, world, **overrides):
    body = {
        "product_id": world.product.id,
        "franchise_id": world.franchise_a.id,
        "shipping_address": "12 Lake Road, Pune",
        "rental_duration": 6,
    }
    body.update(overrides)
    return await client.post("/api/v1/orders", json=body, headers=auth(world.customer))


class TestRentalFlow:

    async def test_order_payment_and_subscription(self, client, auth, world, gateway):
        # Step 1: customer places the order
        response = await place_order(client, auth, world)
        assert response.status_code == 201
        created = response.json()
        order_id = created["order"]["id"]
        assert Decimal(created["order"]["total_initial_amount"]) == Decimal("80")
        assert created["order"]["status"] == "pending"
        assert created["invoice_number"].startswith("INV-")

        # Step 2: open checkout
        response = await client.post(
            "/api/v1/payments/generate-order", json={"order_id": order_id}, headers=auth(world.customer)
        )
        assert response.status_code == 200
        checkout = response.json()
        assert checkout["amount"] == 8000
        assert checkout["razorpay_order_id"] == "order_test_1"

        # Step 3: gateway callback
        response = await client.post(
            "/api/v1/payments/verify",
            json={
                "razorpay_order_id": "order_test_1",
                "razorpay_payment_id": "pay_flow_1",
                "razorpay_signature": gateway.sign("order_test_1", "pay_flow_1"),
                "order_id": order_id,
            },
            headers=auth(world.customer),
        )
        assert response.status_code == 200
        verified = response.json()
        assert verified["verified"] is True
        assert verified["order_status"] == "approved"
        assert verified["payment"]["status"] == "success"
        subscription_id = verified["subscription_id"]

        # Step 4: subscription is visible to the customer and the franchise owner
        for user in (world.customer, world.owner_a):
            response = await client.get(f"/api/v1/subscriptions/{subscription_id}", headers=auth(user))
            assert response.status_code == 200
            assert response.json()["status"] == "active"

        # Step 5: customer asks for a visit
        response = await client.post(
            "/api/v1/service-requests",
            json={"subscription_id": subscription_id, "type": "installation", "description": "Install in kitchen"},
            headers=auth(world.customer),
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        # Step 6: inbox has the whole story
        response = await client.get("/api/v1/notifications", headers=auth(world.customer))
        titles = [n["title"] for n in response.json()["items"]]
        assert "Order Placed Successfully" in titles
        assert "Payment Successful" in titles
        assert "Service Request Created" in titles

    async def test_pause_through_api(self, client, auth, world, active_subscription):
        pause_until = (utcnow() + timedelta(days=10)).isoformat()

        response = await client.post(
            f"/api/v1/subscriptions/{active_subscription.id}/pause",
            json={"pause_end_date": pause_until},
            headers=auth(world.owner_a),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "paused"


class TestErrors:

    async def test_tampered_signature(self, client, auth, world, pending_order):
        order, _ = pending_order
        response = await client.post(
            "/api/v1/payments/verify",
            json={
                "razorpay_order_id": "order_test_1",
                "razorpay_payment_id": "pay_x",
                "razorpay_signature": "deadbeef",
                "order_id": order.id,
            },
            headers=auth(world.customer),
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "invalid_signature"

    async def test_verify_needs_exactly_one_target(self, client, auth, world):
        response = await client.post(
            "/api/v1/payments/verify",
            json={
                "razorpay_order_id": "order_test_1",
                "razorpay_payment_id": "pay_x",
                "razorpay_signature": "deadbeef",
            },
            headers=auth(world.customer),
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    async def test_permission_denied(self, client, auth, world, pending_order):
        order, _ = pending_order
        response = await client.get(f"/api/v1/orders/{order.id}", headers=auth(world.owner_b))

        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "permission_denied"

    async def test_not_found(self, client, auth, world):
        response = await client.get("/api/v1/orders/4242", headers=auth(world.admin))

        assert response.status_code == 404
        assert response.json()["error"] == {"kind": "not_found", "message": "Order 4242 not found"}

    async def test_invalid_state(self, client, auth, world, pending_order):
        order, _ = pending_order
        response = await client.put(
            f"/api/v1/orders/{order.id}/status", json={"status": "delivered"}, headers=auth(world.owner_a)
        )

        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "invalid_state"

    async def test_conflict_on_second_approval(self, client, auth, world, pending_order):
        order, _ = pending_order
        first = await client.put(
            f"/api/v1/orders/{order.id}/status", json={"status": "approved"}, headers=auth(world.owner_a)
        )
        second = await client.put(
            f"/api/v1/orders/{order.id}/status", json={"status": "approved"}, headers=auth(world.admin)
        )

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"]["kind"] == "conflict"

    async def test_rental_duration_bounds(self, client, auth, world):
        response = await place_order(client, auth, world, rental_duration=0)

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    async def test_missing_token(self, client):
        response = await client.get("/api/v1/orders")
        assert response.status_code in (401, 403)

    async def test_garbage_token(self, client):
        response = await client.get("/api/v1/orders", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestPaymentHistory:

    async def test_reads_never_build_a_gateway_client(self, client, auth, world, pending_order, monkeypatch):
        _, payment = pending_order

        def no_gateway():
            raise RuntimeError("gateway client built for a read")

        app.dependency_overrides[get_payment_gateway] = no_gateway
        monkeypatch.setattr(payment_service, "RazorpayGateway", no_gateway)

        response = await client.get("/api/v1/payments", headers=auth(world.customer))
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = await client.get(f"/api/v1/payments/{payment.id}", headers=auth(world.customer))
        assert response.status_code == 200
        assert response.json()["invoice_number"] == payment.invoice_number


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "connected"
