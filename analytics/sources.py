"""
Metrics sources: where an AggregationResult is computed from.

Each source advertises a capability set; MetricsAggregator asks for the
capability it needs instead of branching on concrete types.
"""
from abc import ABC, abstractmethod
from typing import FrozenSet, Optional

from analytics.aggregator import aggregate_invoices, combine_rollups
from analytics.config import config
from analytics.models import AggregationResult, Granularity, MetricsSourceKind, Period


class MetricsSource(ABC):
    """Strategy interface for period aggregation."""

    kind: MetricsSourceKind
    supports_raw_aggregation: bool = False
    supports_rollup_aggregation: bool = False

    @property
    def capabilities(self) -> FrozenSet[MetricsSourceKind]:
        kinds = set()
        if self.supports_raw_aggregation:
            kinds.add(MetricsSourceKind.RAW)
        if self.supports_rollup_aggregation:
            kinds.add(MetricsSourceKind.ROLLUP)
        return frozenset(kinds)

    async def covers(self, period: Period) -> bool:
        """Check if this source has data for the period."""
        return True

    @abstractmethod
    async def fetch(self, period: Period) -> AggregationResult:
        ...


class RawInvoiceSource(MetricsSource):
    """Scans invoices and line items for the period."""

    kind = MetricsSourceKind.RAW
    supports_raw_aggregation = True

    def __init__(self, store, bulk_threshold: float = None, top_n: Optional[int] = None):
        self.store = store
        self.bulk_threshold = config.reports.bulk_threshold if bulk_threshold is None else bulk_threshold
        self.top_n = config.reports.top_n if top_n is None else top_n

    async def fetch(self, period: Period) -> AggregationResult:
        invoices = await self.store.get_invoices(period.start_date, period.end_date)
        return aggregate_invoices(invoices, period, self.bulk_threshold, self.top_n)


class RollupSource(MetricsSource):
    """Combines the pre-rolled monthly fact tables."""

    kind = MetricsSourceKind.ROLLUP
    supports_rollup_aggregation = True

    def __init__(self, store, top_n: Optional[int] = None):
        self.store = store
        self.top_n = config.reports.top_n if top_n is None else top_n

    async def covers(self, period: Period) -> bool:
        # rollups are monthly, a week would get the whole month
        if period.granularity == Granularity.WEEK:
            return False
        return await self.store.has_rollups(period.start_date, period.end_date)

    async def fetch(self, period: Period) -> AggregationResult:
        sales = await self.store.get_sales_rollups(period.start_date, period.end_date)
        products = await self.store.get_product_rollups(period.start_date, period.end_date)
        customers = await self.store.get_customer_rollups(period.start_date, period.end_date)
        return combine_rollups(period, sales, products, customers, self.top_n)
