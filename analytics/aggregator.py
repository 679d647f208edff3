"""
Metrics aggregation over a resolved Period.

Two interchangeable reducers produce the same AggregationResult shape:

- aggregate_invoices(): raw invoice rows. Revenue attribution runs per
  invoice first (attribute_invoices), then lines are grouped by product.
- combine_rollups(): pre-rolled monthly fact rows. Sums revenue, orders,
  units, new customers and bulk figures; averages avg_order_value.

Both reducers finish with the bulk-average sanity filter. MetricsAggregator
picks which MetricsSource strategy serves a request.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from analytics.attribution import attribute_invoices
from analytics.bulk_average import sanitize_bulk_average
from analytics.config import config
from analytics.exceptions import ValidationError
from analytics.models import (
    AggregationResult,
    CustomerRollup,
    Granularity,
    Invoice,
    MetricsSourceKind,
    Period,
    ProductRollup,
    SalesRollup,
    TopCustomer,
    TopProduct,
)
from analytics.observability import get_logger, Timer, metrics

if TYPE_CHECKING:
    from analytics.sources import MetricsSource

logger = get_logger(__name__)


# ─── Ranking ────────────────────────────────────────────────────────────────

def _product_sort_key(product: TopProduct) -> tuple:
    # order count desc, sales desc, then model/category asc so ties are stable
    return (-product.order_count, -product.total_sales, product.model_no, product.category)


def _customer_sort_key(customer: TopCustomer) -> tuple:
    return (-customer.bulk_orders_amount, customer.customer_name)


def rank_products(products: Iterable[TopProduct], top_n: Optional[int]) -> List[TopProduct]:
    ranked = sorted(products, key=_product_sort_key)
    return ranked if top_n is None else ranked[:top_n]


def rank_customers(customers: Iterable[TopCustomer], top_n: Optional[int]) -> List[TopCustomer]:
    ranked = sorted(customers, key=_customer_sort_key)
    return ranked if top_n is None else ranked[:top_n]


# ─── Raw invoice path ───────────────────────────────────────────────────────

@dataclass
class _ProductBucket:
    invoice_ids: Set[int] = field(default_factory=set)
    sales: float = 0.0


@dataclass
class _CustomerBucket:
    name: str
    invoice_ids: Set[int] = field(default_factory=set)
    amount: float = 0.0
    model_nos: Set[str] = field(default_factory=set)


def top_products_from_invoices(
    invoices: Sequence[Invoice],
    top_n: Optional[int] = None,
) -> List[TopProduct]:
    """Rank products by distinct invoice count using per-invoice realized revenue."""
    buckets: Dict[Tuple[str, str], _ProductBucket] = {}

    for line in attribute_invoices(invoices):
        product = line.item.product
        bucket = buckets.setdefault((product.model_no, product.category), _ProductBucket())
        bucket.invoice_ids.add(line.invoice_id)
        bucket.sales += line.realized_revenue

    return rank_products(
        (
            TopProduct(model_no, category, len(bucket.invoice_ids), bucket.sales)
            for (model_no, category), bucket in buckets.items()
        ),
        top_n,
    )


def top_customers_from_invoices(
    invoices: Sequence[Invoice],
    bulk_threshold: float,
    top_n: Optional[int] = None,
) -> List[TopCustomer]:
    """Rank customers by the amount of their bulk invoices."""
    buckets: Dict[int, _CustomerBucket] = {}

    for invoice in invoices:
        if invoice.customer is None or invoice.total_amount < bulk_threshold:
            continue
        bucket = buckets.setdefault(invoice.customer.id, _CustomerBucket(invoice.customer.name))
        if invoice.id in bucket.invoice_ids:
            continue
        bucket.invoice_ids.add(invoice.id)
        bucket.amount += invoice.total_amount
        bucket.model_nos.update(item.product.model_no for item in invoice.items)

    return rank_customers(
        (
            TopCustomer(
                bucket.name, len(bucket.invoice_ids), bucket.amount,
                sorted(bucket.model_nos), customer_id,
            )
            for customer_id, bucket in buckets.items()
        ),
        top_n,
    )


def aggregate_invoices(
    invoices: Iterable[Invoice],
    period: Period,
    bulk_threshold: float = None,
    top_n: Optional[int] = None,
) -> AggregationResult:
    """
    Compute all period metrics from raw invoices.

    Invoices outside the period are ignored. Empty input yields an
    all-zero result rather than an error.

    Args:
        invoices: Invoices with items, products and customers attached
        period: Inclusive date range
        bulk_threshold: Minimum total_amount of a bulk order
        top_n: Ranking length; None keeps every row

    Returns:
        AggregationResult with source=RAW
    """
    if bulk_threshold is None:
        bulk_threshold = config.reports.bulk_threshold

    in_period = {}
    for invoice in invoices:
        if period.contains(invoice.invoice_date):
            in_period.setdefault(invoice.id, invoice)
    rows = list(in_period.values())

    total_revenue = sum(invoice.total_amount for invoice in rows)
    total_orders = len(rows)
    total_units = sum(invoice.units for invoice in rows)

    new_customer_ids = {
        invoice.customer.id
        for invoice in rows
        if invoice.customer is not None and invoice.customer.is_new_in(invoice.invoice_date)
    }

    bulk = [invoice for invoice in rows if invoice.total_amount >= bulk_threshold]
    bulk_amount = sum(invoice.total_amount for invoice in bulk)

    return AggregationResult(
        period=period,
        total_revenue=total_revenue,
        total_orders=total_orders,
        total_units=total_units,
        avg_order_value=total_revenue / total_orders if total_orders else 0.0,
        new_customers=len(new_customer_ids),
        bulk_orders_count=len(bulk),
        bulk_orders_amount=bulk_amount,
        avg_bulk_amount=sanitize_bulk_average(len(bulk), bulk_amount, total_orders),
        top_products=top_products_from_invoices(rows, top_n),
        top_customers=top_customers_from_invoices(rows, bulk_threshold, top_n),
        source=MetricsSourceKind.RAW,
    )


# ─── Rollup path ────────────────────────────────────────────────────────────

def combine_rollups(
    period: Period,
    sales_rows: Sequence[SalesRollup],
    product_rows: Sequence[ProductRollup] = (),
    customer_rows: Sequence[CustomerRollup] = (),
    top_n: Optional[int] = None,
) -> AggregationResult:
    """
    Combine monthly fact rows into one period result.

    Revenue, orders, units, new customers and bulk figures are summed;
    avg_order_value is the mean of the monthly averages. Product and
    customer rows are re-grouped across months before ranking.
    """
    total_orders = sum(row.total_orders for row in sales_rows)
    bulk_count = sum(row.bulk_orders_count for row in sales_rows)
    bulk_amount = sum(row.bulk_orders_amount for row in sales_rows)

    products: Dict[Tuple[str, str], TopProduct] = {}
    for row in product_rows:
        key = (row.model_no, row.category_name)
        entry = products.setdefault(key, TopProduct(row.model_no, row.category_name, 0, 0.0))
        entry.order_count += row.order_count
        entry.total_sales += row.total_sales

    customers: Dict[int, TopCustomer] = {}
    for row in customer_rows:
        entry = customers.setdefault(
            row.customer_id,
            TopCustomer(row.customer_name, 0, 0.0, customer_id=row.customer_id),
        )
        entry.bulk_orders_count += row.bulk_orders_count
        entry.bulk_orders_amount += row.bulk_orders_amount
        entry.model_nos = sorted(set(entry.model_nos) | set(row.model_nos))

    return AggregationResult(
        period=period,
        total_revenue=sum(row.total_revenue for row in sales_rows),
        total_orders=total_orders,
        total_units=sum(row.total_units for row in sales_rows),
        avg_order_value=(
            sum(row.avg_order_value for row in sales_rows) / len(sales_rows)
            if sales_rows else 0.0
        ),
        new_customers=sum(row.new_customers for row in sales_rows),
        bulk_orders_count=bulk_count,
        bulk_orders_amount=bulk_amount,
        avg_bulk_amount=sanitize_bulk_average(bulk_count, bulk_amount, total_orders),
        top_products=rank_products(products.values(), top_n),
        top_customers=rank_customers(customers.values(), top_n),
        source=MetricsSourceKind.ROLLUP,
    )


def rollup_rows_from_result(
    result: AggregationResult,
) -> Tuple[SalesRollup, List[ProductRollup], List[CustomerRollup]]:
    """
    Flatten a full (un-truncated) monthly raw result into fact-table rows.
    """
    month_start = result.period.start_date
    sales = SalesRollup(
        month_start=month_start,
        total_revenue=result.total_revenue,
        total_orders=result.total_orders,
        total_units=result.total_units,
        avg_order_value=result.avg_order_value,
        new_customers=result.new_customers,
        bulk_orders_count=result.bulk_orders_count,
        bulk_orders_amount=result.bulk_orders_amount,
    )
    products = [
        ProductRollup(month_start, p.model_no, p.category, p.order_count, p.total_sales)
        for p in result.top_products
    ]
    customers = [
        CustomerRollup(
            month_start,
            c.customer_id,
            c.customer_name,
            c.bulk_orders_count,
            c.bulk_orders_amount,
            list(c.model_nos),
        )
        for c in result.top_customers
    ]
    return sales, products, customers


# ─── Strategy selection ─────────────────────────────────────────────────────

class MetricsAggregator:
    """
    Runs one aggregation against the best available MetricsSource.

    Weekly periods always use raw rows. Monthly and annual periods use the
    rollup source when it covers the period, falling back to raw rows.
    """

    def __init__(self, sources: Sequence["MetricsSource"]):
        self._sources = list(sources)

    def _find(self, kind: MetricsSourceKind) -> Optional["MetricsSource"]:
        for source in self._sources:
            if kind in source.capabilities:
                return source
        return None

    async def select_source(
        self,
        period: Period,
        prefer: Optional[MetricsSourceKind] = None,
    ) -> "MetricsSource":
        if prefer == MetricsSourceKind.ROLLUP and period.granularity == Granularity.WEEK:
            raise ValidationError("source", "Rollups cannot serve weekly periods", prefer.value)

        if prefer is not None:
            source = self._find(prefer)
            if source is None:
                raise LookupError(f"No metrics source supports {prefer.value} aggregation")
            return source

        if period.granularity != Granularity.WEEK:
            rollup = self._find(MetricsSourceKind.ROLLUP)
            if rollup is not None and await rollup.covers(period):
                return rollup

        raw = self._find(MetricsSourceKind.RAW)
        if raw is None:
            raise LookupError("No metrics source supports raw aggregation")
        return raw

    async def aggregate(
        self,
        period: Period,
        prefer: Optional[MetricsSourceKind] = None,
    ) -> AggregationResult:
        source = await self.select_source(period, prefer)
        operation = f"aggregate_{period.granularity.value}_{source.kind.value}"

        with Timer(operation, logger) as timer:
            result = await source.fetch(period)
        metrics.record_timing(operation, timer.elapsed_ms)

        logger.info(
            f"Aggregated {period.granularity.value} {period.start_date} - {period.end_date}",
            extra={
                "source": source.kind.value,
                "orders": result.total_orders,
                "duration_ms": round(timer.elapsed_ms, 2),
            }
        )
        return result
