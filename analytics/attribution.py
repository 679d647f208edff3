"""
Revenue attribution: spreads an invoice's net total over its lines.

Invoice.total_amount is already net of any header discount, while each
InvoiceItem.total_price is the pre-discount line subtotal. A line's
realized revenue is its share of the subtotal applied to the net total:

    realized = item.total_price / subtotal * invoice.total_amount

Ratios are always taken within a single invoice. Callers that need
per-product or per-category totals must attribute every invoice first
and only then group the resulting lines (see attribute_invoices).
"""
from typing import Dict, Iterable, List, NamedTuple

from analytics.models import Invoice, InvoiceItem


class AttributedLine(NamedTuple):
    """One invoice line with its share of realized revenue."""
    invoice_id: int
    item_id: int
    realized_revenue: float
    item: InvoiceItem


def attribute(invoice: Invoice) -> Dict[int, float]:
    """
    Realized revenue per line item of one invoice.

    Returns:
        Mapping of item id -> realized revenue. Sums to
        invoice.total_amount when the subtotal is positive; every value
        is 0 when the subtotal is 0.
    """
    subtotal = invoice.subtotal
    if subtotal <= 0:
        return {item.id: 0.0 for item in invoice.items}

    return {
        item.id: (item.total_price / subtotal) * invoice.total_amount
        for item in invoice.items
    }


def attribute_invoices(invoices: Iterable[Invoice]) -> List[AttributedLine]:
    """
    Attribute every invoice independently, flattening to one row per line.

    This is the first phase of the attribute-then-reduce pipeline; the
    returned list is the only thing cross-invoice grouping may consume.
    """
    lines: List[AttributedLine] = []
    for invoice in invoices:
        shares = attribute(invoice)
        for item in invoice.items:
            lines.append(AttributedLine(invoice.id, item.id, shares[item.id], item))
    return lines
