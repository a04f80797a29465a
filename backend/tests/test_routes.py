"""
HTTP API tests.

Verifies:
- Requests without a known acting user return 401
- Attendants are denied admin-only operations (403)
- Invoice, inventory and product endpoints round-trip through the services
- Input errors return 400 and missing resources 404
"""

import pytest


def _invoice_payload(customer, currency, product_a, product_b):
    return {
        "customer_id": customer.id,
        "currency_id": currency.id,
        "items": [
            {"product_id": product_a.id, "quantity": 3, "unit_price": "100.00"},
            {"product_id": product_b.id, "quantity": 2, "unit_price": "50.00"},
        ],
    }


# =============================================================================
# AUTHENTICATION (401)
# =============================================================================


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/invoices/"),
            ("POST", "/api/invoices/"),
            ("GET", "/api/invoices/overdue-summary"),
            ("DELETE", "/api/invoices/1"),
            ("GET", "/api/inventory/movements"),
            ("POST", "/api/inventory/movements"),
            ("GET", "/api/inventory/stock-value"),
            ("GET", "/api/inventory/reconcile"),
            ("GET", "/api/products/"),
            ("PUT", "/api/products/1/stock"),
        ],
    )
    def test_requires_acting_user(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_user(self, client, db_session):
        resp = client.get("/api/products/", headers={"X-User-Id": "999999"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, attendant, attendant_headers):
        attendant.is_active = False
        db_session.commit()
        resp = client.get("/api/products/", headers=attendant_headers)
        assert resp.status_code == 401


# =============================================================================
# INVOICES
# =============================================================================


class TestInvoiceRoutes:

    def test_create_and_fetch(self, client, admin_headers, customer, currency, product_a, product_b):
        resp = client.post(
            "/api/invoices/",
            json=_invoice_payload(customer, currency, product_a, product_b),
            headers=admin_headers,
        )
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["total_amount"] == "400.00"
        assert invoice["status"] == "draft"
        assert invoice["invoice_number"].endswith("-0001")
        assert [i["line_total"] for i in invoice["items"]] == ["300.00", "100.00"]

        resp = client.get(f"/api/invoices/{invoice['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.get_json()["invoice"]["items"]) == 2

        resp = client.get(f"/api/products/{product_a.id}", headers=admin_headers)
        assert resp.get_json()["product"]["stock_qty"] == 7

    def test_attendant_can_create(self, client, attendant_headers, customer, currency, product_a, product_b):
        resp = client.post(
            "/api/invoices/",
            json=_invoice_payload(customer, currency, product_a, product_b),
            headers=attendant_headers,
        )
        assert resp.status_code == 201

    @pytest.mark.parametrize(
        "items",
        [
            None,
            [],
            [{"product_id": 1, "quantity": 0, "unit_price": "1.00"}],
            [{"product_id": 1, "quantity": 1.5, "unit_price": "1.00"}],
            [{"product_id": 1, "quantity": 1, "unit_price": "-1.00"}],
            [{"product_id": 1, "quantity": 1}],
        ],
    )
    def test_invalid_items(self, client, admin_headers, customer, currency, items):
        payload = {"customer_id": customer.id, "currency_id": currency.id}
        if items is not None:
            payload["items"] = items
        resp = client.post("/api/invoices/", json=payload, headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_header_fields(self, client, admin_headers, product_a):
        resp = client.post(
            "/api/invoices/",
            json={"items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "1.00"}]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "currency_id" in resp.get_json()["error"]

    def test_unknown_product_is_a_client_error(self, client, admin_headers, customer, currency):
        resp = client.post(
            "/api/invoices/",
            json={
                "customer_id": customer.id,
                "currency_id": currency.id,
                "items": [{"product_id": 999999, "quantity": 1, "unit_price": "1.00"}],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"product_id": 999999}

    def test_status_change(self, client, admin_headers, customer, currency, product_a, product_b):
        invoice_id = client.post(
            "/api/invoices/",
            json=_invoice_payload(customer, currency, product_a, product_b),
            headers=admin_headers,
        ).get_json()["invoice"]["id"]

        resp = client.patch(f"/api/invoices/{invoice_id}/status", json={"status": "sent"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["invoice"]["status"] == "sent"

        resp = client.patch(f"/api/invoices/{invoice_id}/status", json={"status": "void"}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.patch(f"/api/invoices/{invoice_id}/status", json={}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.patch("/api/invoices/999999/status", json={"status": "sent"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_attendant_list_hides_paid(
        self, client, admin_headers, attendant_headers, customer, currency, product_a, product_b
    ):
        payload = _invoice_payload(customer, currency, product_a, product_b)
        paid_id = client.post("/api/invoices/", json=payload, headers=admin_headers).get_json()["invoice"]["id"]
        client.post("/api/invoices/", json=payload, headers=admin_headers)
        client.patch(f"/api/invoices/{paid_id}/status", json={"status": "paid"}, headers=admin_headers)

        assert client.get("/api/invoices/", headers=admin_headers).get_json()["count"] == 2
        assert client.get("/api/invoices/", headers=attendant_headers).get_json()["count"] == 1
        resp = client.get("/api/invoices/?status=paid", headers=attendant_headers)
        assert resp.get_json()["invoices"] == []

    def test_delete_is_admin_only(
        self, client, admin_headers, attendant_headers, customer, currency, product_a, product_b
    ):
        invoice_id = client.post(
            "/api/invoices/",
            json=_invoice_payload(customer, currency, product_a, product_b),
            headers=admin_headers,
        ).get_json()["invoice"]["id"]

        assert client.delete(f"/api/invoices/{invoice_id}", headers=attendant_headers).status_code == 403

        resp = client.delete(f"/api/invoices/{invoice_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {"deleted": True}

        assert client.get(f"/api/invoices/{invoice_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/invoices/{invoice_id}", headers=admin_headers).status_code == 404

        resp = client.get(f"/api/products/{product_a.id}", headers=admin_headers)
        assert resp.get_json()["product"]["stock_qty"] == 10

    def test_overdue_summary(self, client, admin_headers, customer, currency, product_a):
        resp = client.post(
            "/api/invoices/",
            json={
                "customer_id": customer.id,
                "currency_id": currency.id,
                "due_date": "2000-01-01",
                "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "12.34"}],
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201

        resp = client.get("/api/invoices/overdue-summary", headers=admin_headers)
        assert resp.get_json() == {"count": 1, "total": "12.34"}


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventoryRoutes:

    def test_record_purchase(self, client, attendant_headers, product_b):
        resp = client.post(
            "/api/inventory/movements",
            json={"product_id": product_b.id, "quantity": 20, "movement_type": "purchase", "unit_cost": "28.00"},
            headers=attendant_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["stock_qty"] == 25
        assert body["movement"]["quantity"] == 20
        assert body["movement"]["movement_type"] == "purchase"
        assert body["movement"]["created_by_username"] == "attendant"

    @pytest.mark.parametrize(
        "with_product,payload",
        [
            (False, {"quantity": 1, "movement_type": "purchase"}),
            (True, {"quantity": 0, "movement_type": "purchase"}),
            (True, {"quantity": 1, "movement_type": "transfer"}),
            (True, {"quantity": "1e3", "movement_type": "purchase"}),
            (True, {"quantity": 1, "movement_type": "return", "reference_type": "invoice"}),
            (True, {"quantity": 1, "movement_type": "purchase", "unit_cost": "-2"}),
        ],
    )
    def test_invalid_movement(self, client, admin_headers, product_a, with_product, payload):
        if with_product:
            payload = {"product_id": product_a.id, **payload}
        resp = client.post("/api/inventory/movements", json=payload, headers=admin_headers)
        assert resp.status_code == 400

    def test_movement_for_missing_product(self, client, admin_headers, db_session):
        resp = client.post(
            "/api/inventory/movements",
            json={"product_id": 999999, "quantity": 1, "movement_type": "purchase"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_list_movements(self, client, admin_headers, product_a, product_b):
        resp = client.get(f"/api/inventory/movements?product_id={product_a.id}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["movements"][0]["movement_type"] == "initial"

        assert client.get("/api/inventory/movements?limit=1", headers=admin_headers).get_json()["count"] == 1
        assert client.get("/api/inventory/movements?limit=0", headers=admin_headers).status_code == 400
        assert client.get("/api/inventory/movements?limit=abc", headers=admin_headers).status_code == 400

    def test_aggregates(self, client, admin_headers, product_a, product_b):
        assert client.get("/api/inventory/stock-value", headers=admin_headers).get_json() == {
            "stock_value": "750.00"
        }

        low = client.get("/api/inventory/low-stock?threshold=5", headers=admin_headers).get_json()
        assert low["count"] == 1
        assert low["items"][0]["buy_price"] == "30.00"

        categories = client.get("/api/inventory/by-category", headers=admin_headers).get_json()["categories"]
        assert categories == [{"category": "Uncategorized", "items": 2, "value": "750.00"}]

    def test_reconcile(self, client, admin_headers, product_a):
        resp = client.get("/api/inventory/reconcile", headers=admin_headers)
        assert resp.get_json() == {"consistent": True, "mismatches": []}

        resp = client.get(f"/api/inventory/reconcile?product_id={product_a.id}", headers=admin_headers)
        assert resp.get_json()["reconciliation"]["ledger_qty"] == 10

        assert client.get("/api/inventory/reconcile?product_id=999999", headers=admin_headers).status_code == 404


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductRoutes:

    def test_admin_creates_product(self, client, admin_headers, currency):
        resp = client.post(
            "/api/products/",
            json={"name": "Lamp", "currency_id": currency.id, "stock_qty": 4, "buy_price": "7.50"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["stock_qty"] == 4
        assert product["buy_price"] == "7.50"

        resp = client.get(f"/api/inventory/movements?product_id={product['id']}", headers=admin_headers)
        assert resp.get_json()["movements"][0]["movement_type"] == "initial"

    def test_attendant_cannot_create(self, client, attendant_headers, currency):
        resp = client.post(
            "/api/products/",
            json={"name": "Lamp", "currency_id": currency.id},
            headers=attendant_headers,
        )
        assert resp.status_code == 403

    def test_create_validation(self, client, admin_headers, currency):
        resp = client.post("/api/products/", json={"name": "Lamp"}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post(
            "/api/products/",
            json={"name": "Lamp", "currency_id": currency.id, "stock_qty": -1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/products/",
            json={"name": "Lamp", "currency_id": currency.id, "status": "disabled"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_set_stock(self, client, attendant_headers, product_a):
        resp = client.put(
            f"/api/products/{product_a.id}/stock",
            json={"stock_qty": 12, "notes": "Recount"},
            headers=attendant_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["product"]["stock_qty"] == 12

        assert client.put(
            f"/api/products/{product_a.id}/stock", json={}, headers=attendant_headers
        ).status_code == 400
        assert client.put(
            "/api/products/999999/stock", json={"stock_qty": 1}, headers=attendant_headers
        ).status_code == 404

    def test_disable_and_enable(self, client, admin_headers, attendant_headers, product_a):
        assert client.post(f"/api/products/{product_a.id}/disable", headers=attendant_headers).status_code == 403

        resp = client.post(f"/api/products/{product_a.id}/disable", headers=admin_headers)
        assert resp.get_json()["product"]["status"] == "disabled"
        assert client.get("/api/products/", headers=admin_headers).get_json()["count"] == 0
        assert client.get("/api/products/?include_disabled=1", headers=admin_headers).get_json()["count"] == 1

        resp = client.post(f"/api/products/{product_a.id}/enable", headers=admin_headers)
        assert resp.get_json()["product"]["status"] == "active"

    def test_missing_product(self, client, admin_headers):
        assert client.get("/api/products/999999", headers=admin_headers).status_code == 404
        assert client.put("/api/products/999999", json={"name": "x"}, headers=admin_headers).status_code == 404

    def test_update_with_unknown_references(self, client, admin_headers, product_a, currency):
        resp = client.put(f"/api/products/{product_a.id}", json={"currency_id": 999999}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Currency not found"

        resp = client.put(f"/api/products/{product_a.id}", json={"category_id": 999999}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"category_id": 999999}

        resp = client.get(f"/api/products/{product_a.id}", headers=admin_headers)
        assert resp.get_json()["product"]["currency_id"] == currency.id
        assert resp.get_json()["product"]["category_id"] is None


class TestHealth:

    def test_health(self, client, db_session, product_a):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["ledger"]["status"] == "healthy"
