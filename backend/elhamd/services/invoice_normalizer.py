# Overview: Pure normalization of invoice line input into priced lines and invoice totals.

"""
Invoice line normalization.

All money is integer cents. Rules per line:
- quantity, unit price, tax rate and explicit amounts are sanitized: numbers
  or numeric strings are accepted, anything else counts as 0
- total_price = explicit total if > 0 else quantity * unit_price
- tax = explicit tax if > 0 else total_price * tax_rate / 100
- quantity is kept to 2 decimals, money is rounded half-up to the cent

Totals: subtotal = sum(total_price), tax = sum(tax), total = subtotal + tax,
plus a breakdown of tax per distinct positive rate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")

CENT = Decimal("1")
HUNDREDTH = Decimal("0.01")


@dataclass
class NormalizedItem:
    description: str
    quantity: Decimal
    unit_price_cents: int
    total_price_cents: int
    tax_rate: Decimal
    tax_cents: int
    metadata: dict = field(default_factory=dict)
    position: int = 0


@dataclass
class TaxBreakdownEntry:
    rate: Decimal
    tax_cents: int

    def to_dict(self) -> dict:
        return {"rate": float(self.rate), "tax_cents": self.tax_cents}


@dataclass
class InvoiceTotals:
    subtotal_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    breakdown: list[TaxBreakdownEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "tax_breakdown": [entry.to_dict() for entry in self.breakdown],
        }


def sanitize_number(value: Any) -> Decimal:
    """Best-effort numeric coercion; unusable input becomes 0."""
    if isinstance(value, bool) or value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal(0)
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return Decimal(0)
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        if not cleaned:
            return Decimal(0)
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation:
            return Decimal(0)
        return parsed if parsed.is_finite() else Decimal(0)
    return Decimal(0)


def round_cents(value: Decimal) -> int:
    return int(value.quantize(CENT, rounding=ROUND_HALF_UP))


def round_quantity(value: Decimal) -> Decimal:
    return value.quantize(HUNDREDTH, rounding=ROUND_HALF_UP)


def as_metadata(value: Any) -> dict:
    if isinstance(value, dict):
        return dict(value)
    return {}


def normalize_item(raw: Any, position: int = 0) -> NormalizedItem:
    if not isinstance(raw, dict):
        raw = {}

    quantity = round_quantity(sanitize_number(raw.get("quantity")))
    unit_price_cents = round_cents(sanitize_number(raw.get("unit_price_cents")))

    explicit_total = round_cents(sanitize_number(raw.get("total_price_cents")))
    total_price_cents = explicit_total if explicit_total > 0 else round_cents(quantity * unit_price_cents)

    tax_rate = round_quantity(sanitize_number(raw.get("tax_rate")))
    explicit_tax = round_cents(sanitize_number(raw.get("tax_cents")))
    tax_cents = explicit_tax if explicit_tax > 0 else round_cents(total_price_cents * tax_rate / 100)

    description = raw.get("description")
    return NormalizedItem(
        description=str(description).strip() if description is not None else "",
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=total_price_cents,
        tax_rate=tax_rate,
        tax_cents=tax_cents,
        metadata=as_metadata(raw.get("metadata")),
        position=position,
    )


def compute_totals(items: Iterable[NormalizedItem]) -> InvoiceTotals:
    totals = InvoiceTotals()
    by_rate: dict[Decimal, TaxBreakdownEntry] = {}
    for item in items:
        totals.subtotal_cents += item.total_price_cents
        totals.tax_cents += item.tax_cents
        if item.tax_rate <= 0 or item.tax_cents <= 0:
            continue
        entry = by_rate.get(item.tax_rate)
        if entry is None:
            by_rate[item.tax_rate] = TaxBreakdownEntry(rate=item.tax_rate, tax_cents=item.tax_cents)
        else:
            entry.tax_cents += item.tax_cents
    totals.total_cents = totals.subtotal_cents + totals.tax_cents
    totals.breakdown = list(by_rate.values())
    return totals


def normalize_invoice_items(items: Any) -> tuple[list[NormalizedItem], InvoiceTotals]:
    """Normalize raw line dicts; a non-list input yields no lines."""
    if not isinstance(items, list):
        items = []
    normalized = [normalize_item(raw, position) for position, raw in enumerate(items)]
    return normalized, compute_totals(normalized)


def normalized_from_rows(rows) -> tuple[list[NormalizedItem], InvoiceTotals]:
    """Rebuild normalized lines from stored InvoiceItem rows (no re-pricing)."""
    normalized = [
        NormalizedItem(
            description=row.description,
            quantity=Decimal(str(row.quantity or 0)),
            unit_price_cents=row.unit_price_cents or 0,
            total_price_cents=row.total_price_cents or 0,
            tax_rate=Decimal(str(row.tax_rate or 0)),
            tax_cents=row.tax_cents or 0,
            metadata=as_metadata(row.meta),
            position=row.position or 0,
        )
        for row in rows
    ]
    return normalized, compute_totals(normalized)
