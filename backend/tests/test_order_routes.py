"""
API tests for the order, public restaurant and health routes.
"""

from conftest import auth_header, make_order


def create_payload(restaurant_id, menu, **extra):
    return {
        "restaurantId": restaurant_id,
        "tableId": "T5",
        "customerPhone": "9876543210",
        "items": [
            {"menuItemId": menu["paneer"].id, "quantity": 2},
            {"menuItemId": menu["chai"].id, "quantity": 1, "specialInstructions": "less sugar"},
        ],
        **extra,
    }


class TestCreateOrder:
    def test_created_with_camel_case_body(self, client, seed_restaurant, seed_table, seed_menu):
        response = client.post("/api/orders", json=create_payload(seed_restaurant.id, seed_menu))

        assert response.status_code == 201
        data = response.json()
        assert data["subtotal"] == 250.0
        assert data["taxAmount"] == 12.5
        assert data["totalAmount"] == 262.5
        assert data["status"] == "preparing"
        assert data["paymentStatus"] == "pending"
        assert data["items"][1]["specialInstructions"] == "less sugar"
        assert data["lowStockAlerts"] == []
        assert data["revenueMilestone"] is None

    def test_low_stock_alert_in_response(self, client, seed_restaurant, seed_menu):
        payload = create_payload(seed_restaurant.id, seed_menu)
        payload["items"] = [{"menuItemId": seed_menu["chai"].id, "quantity": 3}]

        response = client.post("/api/orders", json=payload)

        assert response.status_code == 201
        assert response.json()["lowStockAlerts"] == [
            {"menuItemId": seed_menu["chai"].id, "name": "Masala Chai", "inventoryCount": 3}
        ]

    def test_empty_items_is_400(self, client, seed_restaurant):
        response = client.post("/api/orders", json={"restaurantId": seed_restaurant.id, "items": []})

        assert response.status_code == 400
        assert response.json()["detail"] == "Order must contain at least one item"

    def test_invalid_promo_is_400(self, client, seed_restaurant, seed_menu):
        response = client.post(
            "/api/orders",
            json=create_payload(seed_restaurant.id, seed_menu, promoCode="NOPE"),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired promo code"

    def test_quantity_out_of_range_is_422(self, client, seed_restaurant, seed_menu):
        payload = create_payload(seed_restaurant.id, seed_menu)
        payload["items"][0]["quantity"] = 0

        assert client.post("/api/orders", json=payload).status_code == 422

    def test_non_json_body_rejected(self, client):
        response = client.post("/api/orders", content="x=1", headers={"Content-Type": "text/plain"})
        assert response.status_code == 415


class TestStatusUpdates:
    def test_pending_to_ready_lists_allowed(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="pending")

        response = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": "ready"},
            headers=auth_header(seed_restaurant.id, "kitchen"),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Invalid status transition from pending to ready. Allowed transitions: preparing, cancelled"
        )

    def test_valid_transition_broadcasts(self, client, broadcaster, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="preparing")

        response = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": " Ready "},
            headers=auth_header(seed_restaurant.id, "kitchen"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert [p.event for p in broadcaster.on_channel(f"kitchen_{seed_restaurant.id}")] == ["order-updated"]

    def test_same_status_is_a_no_op(self, client, broadcaster, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="ready")

        response = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": "ready"},
            headers=auth_header(seed_restaurant.id, "captain"),
        )

        assert response.status_code == 200
        assert broadcaster.published == []

    def test_completion_requires_payment(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="served")

        response = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": "completed"},
            headers=auth_header(seed_restaurant.id),
        )

        assert response.status_code == 400
        assert "payment must be completed" in response.json()["detail"]

    def test_other_restaurant_forbidden(self, client, db_session, seed_restaurant, other_restaurant):
        order = make_order(db_session, seed_restaurant, status="preparing")

        response = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": "ready"},
            headers=auth_header(other_restaurant.id),
        )

        assert response.status_code == 403

    def test_requires_token(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        response = client.put(f"/api/orders/{order.id}/status", json={"status": "ready"})

        assert response.status_code == 401

    def test_next_statuses(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="served")

        response = client.get(
            f"/api/orders/{order.id}/next-statuses",
            headers=auth_header(seed_restaurant.id, "captain"),
        )

        assert response.json()["allowedNext"] == ["completed", "cancelled"]
        assert response.json()["isTerminal"] is False


class TestCounterPayment:
    def test_record_cash_then_complete(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, status="served")
        headers = auth_header(seed_restaurant.id, "reception")

        paid = client.put(f"/api/orders/{order.id}/payment", json={"paymentMethod": "cash"}, headers=headers)
        assert paid.status_code == 200
        assert paid.json()["paymentStatus"] == "paid"

        done = client.put(f"/api/orders/{order.id}/status", json={"status": "completed"}, headers=headers)
        assert done.status_code == 200
        assert done.json()["status"] == "completed"

    def test_kitchen_cannot_collect_payment(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        response = client.put(
            f"/api/orders/{order.id}/payment",
            json={"paymentMethod": "card"},
            headers=auth_header(seed_restaurant.id, "kitchen"),
        )

        assert response.status_code == 403

    def test_online_orders_settle_by_webhook(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, payment_method="upi")

        response = client.put(
            f"/api/orders/{order.id}/payment",
            json={"paymentMethod": "cash"},
            headers=auth_header(seed_restaurant.id),
        )

        assert response.status_code == 400


class TestReads:
    def test_public_order_read(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        response = client.get(f"/api/orders/{order.id}")

        assert response.status_code == 200
        assert response.json()["orderNumber"] == order.order_number

    def test_unknown_order_is_404(self, client, db_session):
        response = client.get("/api/orders/9999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Order with ID 9999 not found"

    def test_active_board_is_scoped_to_restaurant(self, client, db_session, seed_restaurant, other_restaurant):
        mine = make_order(db_session, seed_restaurant, status="ready")
        make_order(db_session, seed_restaurant, status="completed", payment_status="paid")
        make_order(db_session, other_restaurant, status="ready")

        response = client.get("/api/orders/active", headers=auth_header(seed_restaurant.id, "kitchen"))

        assert [o["id"] for o in response.json()] == [mine.id]

    def test_admin_active_requires_management(self, client, seed_restaurant):
        response = client.get("/api/orders/admin/active", headers=auth_header(seed_restaurant.id, "kitchen"))
        assert response.status_code == 403

    def test_list_by_table(self, client, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant, table_id="T9", table_number=9)
        make_order(db_session, seed_restaurant)

        response = client.get("/api/orders/by-table/T9", headers=auth_header(seed_restaurant.id))

        assert [o["id"] for o in response.json()] == [order.id]

    def test_list_rejects_inverted_dates(self, client, seed_restaurant):
        response = client.get(
            "/api/orders?startDate=2024-03-02&endDate=2024-03-01",
            headers=auth_header(seed_restaurant.id),
        )
        assert response.status_code == 400


class TestPublicAndHealth:
    def test_public_restaurant(self, client, seed_restaurant):
        response = client.get("/api/public/restaurants/spice-route")

        assert response.status_code == 200
        data = response.json()
        assert data["taxPercentage"] == 5.0
        assert data["acceptsOnlinePayment"] is False

    def test_unknown_restaurant_is_404(self, client):
        assert client.get("/api/public/restaurants/nowhere").status_code == 404

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Request-ID"]
