# Overview: Pytest coverage for the HTTP API surface.

"""
API Route Tests

Routes only translate between JSON and the services; these tests check the
status codes, error envelope and response shapes.
"""

from conftest import part_line, vehicle_line


def _create(client, customer, items, **fields):
    body = {"customer_id": customer.id, "items": items, **fields}
    return client.post("/api/invoices/", json=body)


class TestInvoiceRoutes:

    def test_create_and_fetch(self, client, customer, make_part):
        part = make_part(quantity=10)
        response = _create(client, customer, [part_line(part, quantity=2)], status="SENT", invoice_type="PARTS")

        assert response.status_code == 201
        invoice = response.json["invoice"]
        assert invoice["status"] == "SENT"
        assert invoice["total_cents"] == 2 * part.unit_price_cents
        assert invoice["items"][0]["metadata"]["inventoryItemId"] == part.id
        assert invoice["metadata"]["inventoryAdjusted"] is True

        fetched = client.get(f"/api/invoices/{invoice['id']}")
        assert fetched.status_code == 200
        assert fetched.json["invoice"]["invoice_number"] == invoice["invoice_number"]

        listed = client.get("/api/invoices/?status=SENT")
        assert [row["id"] for row in listed.json["invoices"]] == [invoice["id"]]
        assert "items" not in listed.json["invoices"][0]

    def test_validation_error_envelope(self, client, customer):
        response = _create(client, customer, [])
        assert response.status_code == 400
        assert response.json["code"] == "VALIDATION_ERROR"
        assert response.json["details"] == {"field": "items"}

    def test_not_found(self, client, db_session):
        response = client.get("/api/invoices/987654")
        assert response.status_code == 404
        assert response.json["code"] == "NOT_FOUND"

    def test_status_change(self, client, customer, make_vehicle):
        vehicle = make_vehicle()
        created = _create(client, customer, [vehicle_line(vehicle)], invoice_type="SALE").json["invoice"]

        response = client.put(f"/api/invoices/{created['id']}/status", json={"status": "SENT", "notes": "Emailed"})
        assert response.status_code == 200
        assert response.json["invoice"]["metadata"]["statusChangeNotes"] == "Emailed"

        bad = client.put(f"/api/invoices/{created['id']}/status", json={"status": "DRAFT"})
        assert bad.status_code == 400
        assert bad.json["code"] == "INVALID_STATUS"

        missing = client.put(f"/api/invoices/{created['id']}/status", json={})
        assert missing.status_code == 400

    def test_update_and_delete(self, client, customer):
        created = _create(
            client, customer, [{"description": "Labour", "quantity": 1, "unit_price_cents": 1000}]
        ).json["invoice"]

        updated = client.put(
            f"/api/invoices/{created['id']}",
            json={"items": [{"description": "Labour", "quantity": 3, "unit_price_cents": 1000}]},
        )
        assert updated.status_code == 200
        assert updated.json["invoice"]["total_cents"] == 3000

        deleted = client.delete(f"/api/invoices/{created['id']}")
        assert deleted.status_code == 200
        assert client.get(f"/api/invoices/{created['id']}").status_code == 404


class TestPaymentRoutes:

    def test_pay_and_refund(self, client, make_invoice):
        invoice = make_invoice([{"description": "Service", "quantity": 1, "unit_price_cents": 1000}], status="SENT")

        paid = client.post("/api/payments/", json={
            "invoice_id": invoice.id,
            "amount_cents": 800,
            "payment_method": "CREDIT_CARD",
        })
        assert paid.status_code == 201
        assert paid.json["summary"]["payment_status"] == "PARTIAL"
        payment_id = paid.json["payment"]["id"]

        over = client.post("/api/payments/", json={
            "invoice_id": invoice.id,
            "amount_cents": 300,
            "payment_method": "CASH",
        })
        assert over.status_code == 400
        assert over.json["code"] == "EXCEEDS_TOTAL"

        refund = client.post(f"/api/payments/{payment_id}/refund", json={"amount_cents": 300, "reason": "Discount"})
        assert refund.status_code == 201
        assert refund.json["refund"]["amount_cents"] == -300
        assert refund.json["summary"]["paid_cents"] == 500

        detail = client.get(f"/api/payments/{payment_id}")
        assert detail.json["refunded_cents"] == 300
        assert len(detail.json["refunds"]) == 1

        summary = client.get(f"/api/payments/invoices/{invoice.id}/summary")
        assert summary.json["remaining_cents"] == 500

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/payments/", json={"amount_cents": 100})
        assert response.status_code == 400

    def test_unknown_invoice(self, client, db_session):
        response = client.post("/api/payments/", json={
            "invoice_id": 987654,
            "amount_cents": 100,
            "payment_method": "CASH",
        })
        assert response.status_code == 404

    def test_unknown_payment(self, client, db_session):
        assert client.get("/api/payments/987654").status_code == 404


class TestInventoryAndLedgerRoutes:

    def test_adjust_and_low_stock(self, client, make_part):
        part = make_part(quantity=6, min_stock_level=5)

        response = client.post(f"/api/inventory/items/{part.id}/adjust", json={"quantity_delta": -2, "reason": "Damaged"})
        assert response.status_code == 200
        assert response.json["item"]["status"] == "LOW_STOCK"

        low = client.get("/api/inventory/low-stock")
        assert low.json["count"] == 1

        negative = client.post(f"/api/inventory/items/{part.id}/adjust", json={"quantity_delta": -50})
        assert negative.status_code == 400
        assert negative.json["code"] == "INSUFFICIENT_STOCK"

        missing = client.post(f"/api/inventory/items/{part.id}/adjust", json={})
        assert missing.status_code == 400

    def test_manual_ledger_entries(self, client, db_session):
        created = client.post("/api/ledger/transactions", json={
            "type": "EXPENSE",
            "category": "RENT",
            "amount_cents": 2500000,
            "date": "2026-03-01",
            "reference_id": "EXP-2026-03-RENT",
        })
        assert created.status_code == 201
        assert created.json["transaction"]["currency"] == "EGP"

        again = client.post("/api/ledger/transactions", json={
            "type": "EXPENSE",
            "category": "RENT",
            "amount_cents": 2600000,
            "date": "2026-03-01",
            "reference_id": "EXP-2026-03-RENT",
        })
        assert again.status_code == 201

        listed = client.get("/api/ledger/transactions?type=EXPENSE")
        rows = listed.json["transactions"]
        assert len(rows) == 1
        assert rows[0]["amount_cents"] == 2600000

        reserved = client.post("/api/ledger/transactions", json={
            "type": "INCOME",
            "category": "SALES",
            "amount_cents": 1,
            "date": "2026-03-01",
            "reference_id": "SALE-1",
        })
        assert reserved.status_code == 400

        bad_date = client.get("/api/ledger/transactions?start=yesterday")
        assert bad_date.status_code == 400


class TestReportAndSystemRoutes:

    def test_financial_overview(self, client, db_session):
        client.post("/api/ledger/transactions", json={
            "type": "INCOME",
            "category": "FINANCING",
            "amount_cents": 10000,
            "date": "2026-02-10",
        })
        response = client.get("/api/reports/financial-overview?start=2026-02-01&end=2026-02-28T23:59:59Z&branch_id=all")
        assert response.status_code == 200
        assert response.json["revenue_cents"] == 10000
        assert response.json["branch_id"] is None

    def test_bad_report_args(self, client, db_session):
        assert client.get("/api/reports/financial-overview?branch_id=main").status_code == 400
        assert client.get("/api/reports/invoices?start=soon").status_code == 400

    def test_payment_method_report(self, client, make_invoice):
        invoice = make_invoice(status="SENT")
        client.post("/api/payments/", json={
            "invoice_id": invoice.id,
            "amount_cents": invoice.total_cents,
            "payment_method": "BANK_TRANSFER",
        })
        response = client.get("/api/reports/payment-methods")
        assert response.json["rows"] == [{"payment_method": "BANK_TRANSFER", "count": 1, "net_cents": 1000}]

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_cors_allowed_origin(self, client, db_session):
        response = client.get("/health", headers={"Origin": "http://localhost:3000"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        other = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in other.headers
