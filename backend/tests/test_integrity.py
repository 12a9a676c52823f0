# Overview: Pytest coverage for the finance integrity check.

from elhamd.models import Payment
from elhamd.services import payment_service
from elhamd.services.integrity_service import run_integrity_check


def _types(section):
    return sorted(issue["type"] for issue in section["issues"])


class TestIntegrityCheck:

    def test_clean_data_is_healthy(self, make_invoice, make_part):
        part = make_part(quantity=10)
        invoice = make_invoice(
            [{"description": "Service", "quantity": 1, "unit_price_cents": 5000, "tax_rate": 14}],
            status="SENT",
        )
        payment_service.process_payment(invoice_id=invoice.id, amount_cents=1000, payment_method="CASH")

        result = run_integrity_check()
        assert result["healthy"] is True
        assert result["total_issues"] == 0
        assert part.status == "IN_STOCK"

    def test_detects_and_repairs_total_drift(self, db_session, make_invoice):
        invoice = make_invoice([{"description": "Service", "quantity": 2, "unit_price_cents": 1500}])
        invoice.subtotal_cents = 1
        invoice.total_cents = 1
        db_session.commit()

        report = run_integrity_check()
        assert _types(report["invoices"]) == ["SUBTOTAL_MISMATCH", "TOTAL_MISMATCH"]
        assert invoice.total_cents == 1

        fixed = run_integrity_check(fix=True)
        assert fixed["invoices"]["fixed"] == 2
        assert invoice.subtotal_cents == 3000
        assert invoice.total_cents == 3000
        assert run_integrity_check()["healthy"] is True

    def test_total_is_not_lowered_below_paid_amount(self, db_session, make_invoice, make_part):
        invoice = make_invoice([{"description": "Service", "quantity": 1, "unit_price_cents": 1000}])
        payment_service.process_payment(invoice_id=invoice.id, amount_cents=1000, payment_method="CASH")
        invoice.items[0].unit_price_cents = 500
        invoice.items[0].total_price_cents = 500
        part = make_part(quantity=2, min_stock_level=5)
        part.status = "IN_STOCK"
        db_session.commit()

        report = run_integrity_check(fix=True)

        issues = {issue["type"]: issue for issue in report["invoices"]["issues"]}
        assert sorted(issues) == ["SUBTOTAL_MISMATCH", "TOTAL_MISMATCH"]
        assert issues["TOTAL_MISMATCH"]["expected"] == 500
        assert issues["TOTAL_MISMATCH"]["repairable"] is False
        assert report["invoices"]["fixed"] == 0
        assert invoice.total_cents == 1000
        assert invoice.subtotal_cents == 1000
        assert invoice.paid_cents == 1000
        # Other repairs in the same run are still committed.
        assert report["inventory"]["fixed"] == 1
        assert part.status == "LOW_STOCK"

    def test_paid_amount_follows_payment_log(self, db_session, make_invoice):
        invoice = make_invoice([{"description": "Service", "quantity": 1, "unit_price_cents": 1000}])
        payment_service.process_payment(invoice_id=invoice.id, amount_cents=400, payment_method="CASH")
        invoice.paid_cents = 900
        db_session.commit()

        report = run_integrity_check(fix=True)
        issue = report["invoices"]["issues"][0]
        assert issue["type"] == "PAID_AMOUNT_MISMATCH"
        assert issue["expected"] == 400
        assert issue["actual"] == 900
        assert issue["repairable"] is True
        assert invoice.paid_cents == 400

    def test_payment_anomalies_are_reported(self, db_session, make_invoice, customer):
        invoice = make_invoice([{"description": "Service", "quantity": 1, "unit_price_cents": 1000}])
        db_session.add(Payment(
            invoice_id=invoice.id,
            customer_id=customer.id,
            amount_cents=-100,
            payment_method="CASH",
            status="COMPLETED",
        ))
        db_session.commit()

        report = run_integrity_check()
        assert _types(report["payments"]) == ["MISSING_TRANSACTION_ID", "UNLINKED_REFUND"]
        # A negative log sum is outside [0, total] and is not repaired.
        assert report["invoices"]["issues"][0]["repairable"] is False

    def test_inventory_status_drift(self, db_session, make_part):
        part = make_part(quantity=2, min_stock_level=5)
        part.status = "IN_STOCK"
        db_session.commit()

        report = run_integrity_check(fix=True)
        assert _types(report["inventory"]) == ["STATUS_DRIFT"]
        assert report["inventory"]["fixed"] == 1
        assert part.status == "LOW_STOCK"
