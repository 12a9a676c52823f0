# Overview: Pytest coverage for the financial overview and invoice summary reports.

from datetime import datetime

import pytest

from elhamd.services import invoice_service, ledger_service, payment_service, reporting_service
from elhamd.services.reporting_service import ReportError, percentage_change, resolve_period

FEB_START = datetime(2026, 2, 1)
FEB_END = datetime(2026, 2, 28, 23, 59, 59)


def _paid_invoice(make_invoice, amount, *, invoice_type="SALE", issue_date="2026-02-05", **fields):
    invoice = make_invoice(
        [{"description": "Line", "quantity": 1, "unit_price_cents": amount}],
        invoice_type=invoice_type,
        issue_date=issue_date,
        status="SENT",
        **fields,
    )
    payment_service.process_payment(invoice_id=invoice.id, amount_cents=amount, payment_method="CASH")
    invoice_service.change_invoice_status(invoice.id, "PAID")
    return invoice


def _entry(type, category, amount, date, **fields):
    return ledger_service.create_entry(
        type=type,
        category=category,
        amount_cents=amount,
        date=date,
        **fields,
    )


class TestPeriods:

    def test_month_compares_with_whole_previous_month(self):
        period = resolve_period("month", datetime(2026, 3, 15, 12))
        assert period.start == datetime(2026, 3, 1)
        assert period.previous_start == datetime(2026, 2, 1)
        assert period.previous_end == datetime(2026, 2, 28, 23, 59, 59, 999999)

    def test_january_compares_with_december(self):
        period = resolve_period("month", datetime(2026, 1, 10))
        assert period.previous_start == datetime(2025, 12, 1)

    def test_other_periods(self):
        now = datetime(2026, 5, 20, 9, 30)
        assert resolve_period("today", now).start == datetime(2026, 5, 20)
        assert resolve_period("week", now).start == datetime(2026, 5, 14)
        assert resolve_period("quarter", now).start == datetime(2026, 4, 1)
        assert resolve_period("year", now).start == datetime(2026, 1, 1)

        week = resolve_period("week", now)
        assert week.previous_end < week.start
        assert week.previous_end - week.previous_start == week.end - week.start

    def test_unknown_period_falls_back_to_month(self):
        assert resolve_period("decade", datetime(2026, 3, 2)).name == "month"

    def test_percentage_change(self):
        assert percentage_change(150, 100) == 50.0
        assert percentage_change(1, 3) == -66.67
        assert percentage_change(500, 0) == 0.0


class TestFinancialOverview:

    def _february_activity(self, make_invoice):
        _paid_invoice(make_invoice, 100000)
        _paid_invoice(make_invoice, 20000, invoice_type="SERVICE")
        make_invoice(
            [{"description": "Quote", "quantity": 1, "unit_price_cents": 99999}],
            issue_date="2026-02-06",
        )
        _entry("INCOME", "FINANCING", 30000, "2026-02-10T10:00:00Z")
        _entry("EXPENSE", "RENT", 50000, "2026-02-12")

    def test_revenue_counts_all_income_and_paid_invoices(self, make_invoice):
        self._february_activity(make_invoice)

        report = reporting_service.financial_overview(start=FEB_START, end=FEB_END)

        assert report["excludes_invoice_ledger"] is False
        assert report["revenue_from_invoices_cents"] == 120000
        # FINANCING plus the SALE- rows of both paid invoices and the quote.
        assert report["revenue_from_transactions_cents"] == 249999
        assert report["revenue_cents"] == 369999
        assert report["expenses_cents"] == 50000
        assert report["net_profit_cents"] == 319999
        assert report["profit_margin"] == pytest.approx(0.8649)
        assert report["invoice_count"] == 2
        assert report["transaction_count"] == 5

        categories = {b["category"]: b["amount_cents"] for b in report["revenue_by_category"]}
        assert categories == {
            "New vehicle sales": 100000,
            "Maintenance services": 20000,
            "FINANCING": 30000,
            "SALES": 120000,
            "SALES_PIPELINE": 99999,
        }
        assert report["revenue_by_category"][0]["category"] == "SALES"
        assert report["expenses_by_category"] == [{"category": "RENT", "amount_cents": 50000, "count": 1}]

    def test_invoice_ledger_rows_can_be_excluded(self, make_invoice):
        self._february_activity(make_invoice)

        report = reporting_service.financial_overview(
            start=FEB_START,
            end=FEB_END,
            exclude_invoice_ledger=True,
        )

        assert report["excludes_invoice_ledger"] is True
        assert report["revenue_from_invoices_cents"] == 120000
        assert report["revenue_from_transactions_cents"] == 30000
        assert report["revenue_cents"] == 150000
        assert report["net_profit_cents"] == 100000
        assert report["profit_margin"] == pytest.approx(0.6667)
        assert report["transaction_count"] == 2

        categories = {b["category"]: b["amount_cents"] for b in report["revenue_by_category"]}
        assert categories == {
            "New vehicle sales": 100000,
            "Maintenance services": 20000,
            "FINANCING": 30000,
        }
        assert report["revenue_by_category"][0]["category"] == "New vehicle sales"

    def test_exclusion_follows_app_config(self, app, monkeypatch, make_invoice):
        self._february_activity(make_invoice)
        monkeypatch.setitem(app.config, "REPORT_EXCLUDE_INVOICE_LEDGER_INCOME", True)

        report = reporting_service.financial_overview(start=FEB_START, end=FEB_END)
        assert report["excludes_invoice_ledger"] is True
        assert report["revenue_cents"] == 150000

        # An explicit argument wins over the configured default.
        report = reporting_service.financial_overview(
            start=FEB_START,
            end=FEB_END,
            exclude_invoice_ledger=False,
        )
        assert report["revenue_cents"] == 369999

    def test_trends_against_previous_window(self, make_invoice):
        _entry("EXPENSE", "RENT", 30000, "2026-02-12")
        _entry("EXPENSE", "RENT", 10000, "2026-01-20")
        _paid_invoice(make_invoice, 40000)
        _paid_invoice(make_invoice, 20000, issue_date="2026-01-15")

        report = reporting_service.financial_overview(start=FEB_START, end=FEB_END)

        assert report["previous"]["expenses_cents"] == 10000
        # Each paid invoice counts through its total and its SALE- ledger row.
        assert report["previous"]["revenue_cents"] == 40000
        assert report["revenue_cents"] == 80000
        assert report["trends"]["expenses"] == 200.0
        assert report["trends"]["revenue"] == 100.0
        assert report["trends"]["net_profit"] == 66.67

    def test_branch_filter(self, make_invoice, branch):
        _paid_invoice(make_invoice, 40000, branch_id=branch.id)
        _paid_invoice(make_invoice, 25000)
        _entry("EXPENSE", "SALARIES", 5000, "2026-02-03", branch_id=branch.id)
        _entry("EXPENSE", "SALARIES", 7000, "2026-02-03")

        report = reporting_service.financial_overview(start=FEB_START, end=FEB_END, branch_id=branch.id)
        assert report["revenue_from_invoices_cents"] == 40000
        assert report["revenue_cents"] == 80000
        assert report["expenses_cents"] == 5000

    def test_empty_range(self, db_session):
        report = reporting_service.financial_overview(start=FEB_START, end=FEB_END)
        assert report["revenue_cents"] == 0
        assert report["profit_margin"] == 0.0
        assert report["revenue_by_category"] == []

    def test_named_period(self, db_session):
        report = reporting_service.financial_overview(period="quarter", now=datetime(2026, 5, 20))
        assert report["period"]["name"] == "quarter"
        assert report["period"]["start"] == "2026-04-01T00:00:00Z"

    def test_custom_range_needs_both_ends(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.financial_overview(start=FEB_START)
        with pytest.raises(ReportError):
            reporting_service.financial_overview(start=FEB_END, end=FEB_START)


class TestInvoiceSummary:

    def test_counts_and_outstanding(self, make_invoice):
        _paid_invoice(make_invoice, 1000)
        sent = make_invoice(
            [{"description": "Line", "quantity": 1, "unit_price_cents": 3000}],
            status="SENT",
            issue_date="2026-02-07",
        )
        payment_service.process_payment(invoice_id=sent.id, amount_cents=1000, payment_method="CASH")
        cancelled = make_invoice(
            [{"description": "Line", "quantity": 1, "unit_price_cents": 9000}],
            issue_date="2026-02-08",
        )
        invoice_service.change_invoice_status(cancelled.id, "CANCELLED")

        summary = reporting_service.invoice_summary(start=FEB_START, end=FEB_END)

        assert summary["count"] == 3
        assert summary["total_cents"] == 13000
        assert summary["paid_cents"] == 2000
        assert summary["outstanding_cents"] == 2000
        assert summary["by_status"]["CANCELLED"]["count"] == 1
        assert summary["by_status"]["SENT"]["paid_cents"] == 1000
