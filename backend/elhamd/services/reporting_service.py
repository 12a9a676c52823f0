# Overview: Service-layer operations for financial reporting; read-only aggregation over the ledger and invoices.

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, Transaction
from ..validation import ValidationError
from elhamd.time_utils import parse_iso_datetime, utcnow, to_utc_z
from .ledger_service import TYPE_EXPENSE, TYPE_INCOME


class ReportError(ValidationError):
    """Raised when report generation fails."""
    pass


PERIODS = ("today", "week", "month", "quarter", "year")
DEFAULT_PERIOD = "month"

INVOICE_TYPE_LABELS = {
    "SALE": "New vehicle sales",
    "USED_SALE": "Used vehicle sales",
    "SERVICE": "Maintenance services",
    "PARTS": "Spare parts",
}
OTHER_INVOICE_LABEL = "Additional services"
UNCATEGORIZED_LABEL = "Uncategorized"

# Ledger rows written by invoice fulfillment.
INVOICE_LEDGER_PREFIX = "SALE-"


@dataclass(frozen=True)
class Period:
    name: str
    start: datetime
    end: datetime
    previous_start: datetime
    previous_end: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "start": to_utc_z(self.start),
            "end": to_utc_z(self.end),
            "previous_start": to_utc_z(self.previous_start),
            "previous_end": to_utc_z(self.previous_end),
        }


def _day_start(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_end(year: int, month: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, last_day, 23, 59, 59, 999999)


def resolve_period(period: str | None, now: datetime | None = None) -> Period:
    """
    Map a named period to [start, end] plus the comparison window.

    - today: midnight to now
    - week: the last 7 days
    - month: the calendar month so far; compared with the whole previous month
    - quarter: the calendar quarter so far
    - year: the calendar year so far
    Unknown names fall back to month. Non-month periods compare with a
    window of the same length immediately before.
    """
    now = now or utcnow()
    name = period if period in PERIODS else DEFAULT_PERIOD

    if name == "month":
        start = datetime(now.year, now.month, 1)
        prev_year, prev_month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
        return Period(
            name=name,
            start=start,
            end=now,
            previous_start=datetime(prev_year, prev_month, 1),
            previous_end=_month_end(prev_year, prev_month),
        )

    if name == "today":
        start = _day_start(now)
    elif name == "week":
        start = _day_start(now) - timedelta(days=6)
    elif name == "quarter":
        start = datetime(now.year, ((now.month - 1) // 3) * 3 + 1, 1)
    else:
        start = datetime(now.year, 1, 1)

    length = now - start
    previous_end = start - timedelta(microseconds=1)
    return Period(
        name=name,
        start=start,
        end=now,
        previous_start=previous_end - length,
        previous_end=previous_end,
    )


def custom_period(start: str | datetime, end: str | datetime) -> Period:
    """Explicit range; compared with a window of equal length right before it."""
    start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
    end_dt = parse_iso_datetime(end) if isinstance(end, str) else end
    if start_dt is None or end_dt is None:
        raise ReportError("start and end are required for a custom range")
    if end_dt < start_dt:
        raise ReportError("end must not be before start", details={"start": start, "end": end})
    previous_end = start_dt - timedelta(microseconds=1)
    return Period(
        name="custom",
        start=start_dt,
        end=end_dt,
        previous_start=previous_end - (end_dt - start_dt),
        previous_end=previous_end,
    )


def invoice_type_label(invoice_type: str | None) -> str:
    return INVOICE_TYPE_LABELS.get(invoice_type or "", OTHER_INVOICE_LABEL)


def percentage_change(current: int, previous: int) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def _ledger_rows(
    *,
    type: str,
    start: datetime,
    end: datetime,
    branch_id: int | None,
    exclude_invoice_rows: bool = False,
):
    query = db.session.query(Transaction).filter(
        Transaction.type == type,
        Transaction.date >= start,
        Transaction.date <= end,
    )
    if exclude_invoice_rows:
        query = query.filter(~Transaction.reference_id.like(f"{INVOICE_LEDGER_PREFIX}%"))
    if branch_id is not None:
        query = query.filter(Transaction.branch_id == branch_id)
    return query.order_by(Transaction.date).all()


def _paid_invoices(*, start: datetime, end: datetime, branch_id: int | None):
    query = db.session.query(Invoice).filter(
        Invoice.status == "PAID",
        Invoice.issue_date >= start,
        Invoice.issue_date <= end,
    )
    if branch_id is not None:
        query = query.filter(Invoice.branch_id == branch_id)
    return query.order_by(Invoice.issue_date).all()


def _accumulate(buckets: dict, label: str, amount: int) -> None:
    bucket = buckets.setdefault(label, {"category": label, "amount_cents": 0, "count": 0})
    bucket["amount_cents"] += amount
    bucket["count"] += 1


def _aggregate(
    *,
    start: datetime,
    end: datetime,
    branch_id: int | None,
    exclude_invoice_ledger: bool,
) -> dict:
    income = _ledger_rows(
        type=TYPE_INCOME,
        start=start,
        end=end,
        branch_id=branch_id,
        exclude_invoice_rows=exclude_invoice_ledger,
    )
    expenses = _ledger_rows(type=TYPE_EXPENSE, start=start, end=end, branch_id=branch_id)
    invoices = _paid_invoices(start=start, end=end, branch_id=branch_id)

    revenue_by_category: dict[str, dict] = {}
    for row in income:
        _accumulate(revenue_by_category, row.category or UNCATEGORIZED_LABEL, row.amount_cents)
    for inv in invoices:
        _accumulate(revenue_by_category, invoice_type_label(inv.invoice_type), inv.total_cents)

    expenses_by_category: dict[str, dict] = {}
    for row in expenses:
        _accumulate(expenses_by_category, row.category or UNCATEGORIZED_LABEL, row.amount_cents)

    from_transactions = sum(row.amount_cents for row in income)
    from_invoices = sum(inv.total_cents for inv in invoices)
    revenue = from_transactions + from_invoices
    expense_total = sum(row.amount_cents for row in expenses)
    net_profit = revenue - expense_total

    return {
        "revenue_cents": revenue,
        "revenue_from_transactions_cents": from_transactions,
        "revenue_from_invoices_cents": from_invoices,
        "expenses_cents": expense_total,
        "net_profit_cents": net_profit,
        "profit_margin": round(net_profit / revenue, 4) if revenue else 0.0,
        "revenue_by_category": sorted(
            revenue_by_category.values(), key=lambda b: (-b["amount_cents"], b["category"])
        ),
        "expenses_by_category": sorted(
            expenses_by_category.values(), key=lambda b: (-b["amount_cents"], b["category"])
        ),
        "transaction_count": len(income) + len(expenses),
        "invoice_count": len(invoices),
    }


def financial_overview(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: int | None = None,
    period: str | None = None,
    now: datetime | None = None,
    exclude_invoice_ledger: bool | None = None,
) -> dict:
    """
    Revenue / expenses / profit dashboard for a range, with trends against
    the previous range.

    Either pass an explicit start+end, or a named period (default month).

    Revenue is every INCOME ledger row plus the totals of paid invoices.
    With exclude_invoice_ledger (default: REPORT_EXCLUDE_INVOICE_LEDGER_INCOME)
    the SALE-<invoice> ledger rows are left out of the ledger half.
    """
    if exclude_invoice_ledger is None:
        exclude_invoice_ledger = current_app.config.get("REPORT_EXCLUDE_INVOICE_LEDGER_INCOME", False)

    if start is not None or end is not None:
        window = custom_period(start, end)
    else:
        window = resolve_period(period, now)

    current = _aggregate(
        start=window.start,
        end=window.end,
        branch_id=branch_id,
        exclude_invoice_ledger=exclude_invoice_ledger,
    )
    previous = _aggregate(
        start=window.previous_start,
        end=window.previous_end,
        branch_id=branch_id,
        exclude_invoice_ledger=exclude_invoice_ledger,
    )

    return {
        "period": window.to_dict(),
        "branch_id": branch_id,
        "excludes_invoice_ledger": exclude_invoice_ledger,
        **current,
        "previous": {
            "revenue_cents": previous["revenue_cents"],
            "expenses_cents": previous["expenses_cents"],
            "net_profit_cents": previous["net_profit_cents"],
        },
        "trends": {
            "revenue": percentage_change(current["revenue_cents"], previous["revenue_cents"]),
            "expenses": percentage_change(current["expenses_cents"], previous["expenses_cents"]),
            "net_profit": percentage_change(current["net_profit_cents"], previous["net_profit_cents"]),
        },
    }


def invoice_summary(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: int | None = None,
) -> dict:
    """Invoice counts and money per status for invoices issued in range."""
    query = db.session.query(
        Invoice.status.label("status"),
        func.count(Invoice.id).label("count"),
        func.coalesce(func.sum(Invoice.total_cents), 0).label("total_cents"),
        func.coalesce(func.sum(Invoice.paid_cents), 0).label("paid_cents"),
    )
    if start is not None:
        query = query.filter(Invoice.issue_date >= start)
    if end is not None:
        query = query.filter(Invoice.issue_date <= end)
    if branch_id is not None:
        query = query.filter(Invoice.branch_id == branch_id)

    rows = query.group_by(Invoice.status).all()

    by_status = {}
    count = total = paid = outstanding = 0
    for row in rows:
        row_total = int(row.total_cents or 0)
        row_paid = int(row.paid_cents or 0)
        by_status[row.status] = {
            "count": int(row.count or 0),
            "total_cents": row_total,
            "paid_cents": row_paid,
        }
        count += int(row.count or 0)
        total += row_total
        paid += row_paid
        # Cancelled and refunded invoices are not collectable.
        if row.status not in ("CANCELLED", "REFUNDED"):
            outstanding += row_total - row_paid

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "branch_id": branch_id,
        "count": count,
        "total_cents": total,
        "paid_cents": paid,
        "outstanding_cents": outstanding,
        "by_status": by_status,
    }
