"""
Tests for analytics.aggregator and analytics.sources modules.
"""
import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from analytics.aggregator import (
    MetricsAggregator,
    aggregate_invoices,
    combine_rollups,
    rollup_rows_from_result,
)
from analytics.exceptions import ValidationError
from analytics.models import (
    AggregationResult,
    Invoice,
    MetricsSourceKind,
    SalesRollup,
)
from analytics.periods import month_periods, resolve_period
from analytics.sources import RawInvoiceSource, RollupSource

BULK = 10000


@pytest.fixture
def january():
    return resolve_period(2024, "January")


class TestAggregateInvoices:
    """Tests for the raw-row reducer."""

    def test_headline_metrics(self, sample_invoices, january):
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK, top_n=10)

        assert result.total_revenue == pytest.approx(33400.0)
        assert result.total_orders == 4
        assert result.total_units == 9
        assert result.avg_order_value == pytest.approx(8350.0)
        assert result.new_customers == 2
        assert result.source == MetricsSourceKind.RAW

    def test_bulk_metrics(self, sample_invoices, january):
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK)

        assert result.bulk_orders_count == 2
        assert result.bulk_orders_amount == pytest.approx(32000.0)
        assert result.avg_bulk_amount == pytest.approx(16000.0)

    def test_threshold_is_inclusive(self, january, customers):
        invoice = Invoice(1, date(2024, 1, 5), 10000.0, customers["acme"])
        result = aggregate_invoices([invoice], january, bulk_threshold=BULK)
        assert result.bulk_orders_count == 1

    def test_top_products_ranking(self, sample_invoices, january):
        """Order count desc, then realized sales desc."""
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK)

        ranked = [(p.model_no, p.category, p.order_count) for p in result.top_products]
        assert ranked == [
            ("MX-100", "Pumps", 2),
            ("MX-200", "Valves", 2),
            ("MX-300", "Uncategorized", 1),
        ]
        assert result.top_products[0].total_sales == pytest.approx(8900.0)
        assert result.top_products[1].total_sales == pytest.approx(4500.0)
        assert result.top_products[2].total_sales == pytest.approx(20000.0)

    def test_top_customers_ranking(self, sample_invoices, january):
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK)

        assert [c.customer_name for c in result.top_customers] == ["Gamma Works", "Acme Trading"]
        acme = result.top_customers[1]
        assert acme.bulk_orders_count == 1
        assert acme.bulk_orders_amount == pytest.approx(12000.0)
        assert acme.model_no == "MX-100, MX-200"

    def test_top_n_truncates(self, sample_invoices, january):
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK, top_n=1)
        assert len(result.top_products) == 1
        assert len(result.top_customers) == 1

    def test_bulk_customer_without_lines(self, january, customers):
        invoice = Invoice(9, date(2024, 1, 9), 25000.0, customers["acme"])
        result = aggregate_invoices([invoice], january, bulk_threshold=BULK)
        assert result.top_customers[0].model_no == "N/A"

    def test_invoices_outside_period_ignored(self, sample_invoices, january):
        """The February invoice contributes nothing to January."""
        result = aggregate_invoices(sample_invoices, january, bulk_threshold=BULK)
        assert result.total_orders == 4
        assert "Beta Supplies" not in [c.customer_name for c in result.top_customers]

    def test_duplicate_invoices_counted_once(self, sample_invoices, january):
        result = aggregate_invoices(
            sample_invoices + [sample_invoices[0]], january, bulk_threshold=BULK
        )
        assert result.total_orders == 4
        assert result.top_products[0].order_count == 2

    def test_first_week(self, sample_invoices):
        result = aggregate_invoices(sample_invoices, resolve_period(2024, "January", 1), BULK)
        assert result.total_revenue == pytest.approx(12000.0)
        assert result.new_customers == 0

    def test_fifth_week(self, sample_invoices):
        result = aggregate_invoices(sample_invoices, resolve_period(2024, "January", 5), BULK)
        assert result.total_orders == 1
        assert result.total_revenue == pytest.approx(900.0)

    def test_customer_not_new_in_later_month(self, sample_invoices):
        result = aggregate_invoices(sample_invoices, resolve_period(2024, "February"), BULK)
        assert result.total_orders == 1
        assert result.new_customers == 0

    def test_empty_period(self, sample_invoices):
        result = aggregate_invoices(sample_invoices, resolve_period(2024, "March"), BULK)

        assert result.total_revenue == 0
        assert result.total_orders == 0
        assert result.avg_order_value == 0.0
        assert result.avg_bulk_amount == 0.0
        assert result.top_products == []
        assert result.top_customers == []

    def test_payload_shape(self, sample_invoices, january):
        payload = aggregate_invoices(sample_invoices, january, BULK).to_dict()

        assert payload["totalRevenue"] == 33400.0
        assert payload["numberOfOrders"] == 4
        assert payload["avgBulkAmount"] == 16000.0
        assert payload["topProducts"][2] == {
            "modelNo": "MX-300", "category": "Uncategorized", "orderCount": 1, "sales": 20000.0,
        }
        assert payload["topCustomers"][0]["customer"] == "Gamma Works"
        assert payload["period"] == {
            "startDate": "2024-01-01", "endDate": "2024-01-31", "granularity": "month",
        }
        assert payload["source"] == "raw"


class TestCombineRollups:
    """Tests for the rollup combiner."""

    def _rollups(self, invoices, year=2024):
        sales, products, customers = [], [], []
        for period in month_periods(year):
            result = aggregate_invoices(invoices, period, BULK, top_n=None)
            if not result.total_orders:
                continue
            s, p, c = rollup_rows_from_result(result)
            sales.append(s)
            products.extend(p)
            customers.extend(c)
        return sales, products, customers

    def test_matches_raw_annual(self, sample_invoices):
        year = resolve_period(2024)
        raw = aggregate_invoices(sample_invoices, year, BULK, top_n=10)
        rolled = combine_rollups(year, *self._rollups(sample_invoices), top_n=10)

        assert rolled.source == MetricsSourceKind.ROLLUP
        assert rolled.total_revenue == pytest.approx(raw.total_revenue)
        assert rolled.total_orders == raw.total_orders == 5
        assert rolled.total_units == raw.total_units == 12
        assert rolled.new_customers == raw.new_customers == 2
        assert rolled.bulk_orders_count == raw.bulk_orders_count == 3
        assert rolled.bulk_orders_amount == pytest.approx(47000.0)
        assert rolled.avg_bulk_amount == pytest.approx(raw.avg_bulk_amount)
        assert [p.to_dict() for p in rolled.top_products] == [p.to_dict() for p in raw.top_products]
        assert [c.to_dict() for c in rolled.top_customers] == [c.to_dict() for c in raw.top_customers]

    def test_avg_order_value_is_mean_of_months(self, sample_invoices):
        year = resolve_period(2024)
        rolled = combine_rollups(year, *self._rollups(sample_invoices))
        # January 33400 / 4, February 15000 / 1
        assert rolled.avg_order_value == pytest.approx((8350.0 + 15000.0) / 2)

    def test_customer_models_merged_across_months(self, sample_invoices, customers):
        extra = Invoice(6, date(2024, 3, 4), 11000.0, customers["acme"], ())
        year = resolve_period(2024)
        rolled = combine_rollups(year, *self._rollups(sample_invoices + [extra]))

        acme = next(c for c in rolled.top_customers if c.customer_name == "Acme Trading")
        assert acme.bulk_orders_count == 2
        assert acme.model_no == "MX-100, MX-200"

    def test_contaminated_bulk_count(self):
        """Line-level bulk counts fall back to the invoice count."""
        period = resolve_period(2024, "January")
        row = SalesRollup(
            date(2024, 1, 1), total_revenue=50000, total_orders=4,
            bulk_orders_count=10, bulk_orders_amount=40000,
        )
        result = combine_rollups(period, [row])
        assert result.avg_bulk_amount == pytest.approx(10000.0)

    def test_no_rows(self):
        result = combine_rollups(resolve_period(2024, "January"), [])
        assert result.total_orders == 0
        assert result.avg_order_value == 0.0


def _fake_source(kind: MetricsSourceKind, covers: bool = True):
    source = MagicMock()
    source.kind = kind
    source.capabilities = frozenset({kind})
    source.covers = AsyncMock(return_value=covers)
    source.fetch = AsyncMock(
        side_effect=lambda period: AggregationResult(period=period, source=kind)
    )
    return source


class TestMetricsAggregator:
    """Tests for source selection."""

    @pytest.mark.asyncio
    async def test_weekly_always_raw(self):
        rollup = _fake_source(MetricsSourceKind.ROLLUP)
        raw = _fake_source(MetricsSourceKind.RAW)
        aggregator = MetricsAggregator([rollup, raw])

        result = await aggregator.aggregate(resolve_period(2024, "January", 2))

        assert result.source == MetricsSourceKind.RAW
        rollup.covers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_monthly_prefers_covering_rollup(self):
        rollup = _fake_source(MetricsSourceKind.ROLLUP, covers=True)
        raw = _fake_source(MetricsSourceKind.RAW)
        aggregator = MetricsAggregator([rollup, raw])

        result = await aggregator.aggregate(resolve_period(2024, "January"))

        assert result.source == MetricsSourceKind.ROLLUP
        raw.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_raw(self):
        rollup = _fake_source(MetricsSourceKind.ROLLUP, covers=False)
        raw = _fake_source(MetricsSourceKind.RAW)
        aggregator = MetricsAggregator([rollup, raw])

        result = await aggregator.aggregate(resolve_period(2024))
        assert result.source == MetricsSourceKind.RAW

    @pytest.mark.asyncio
    async def test_explicit_preference(self):
        rollup = _fake_source(MetricsSourceKind.ROLLUP, covers=True)
        raw = _fake_source(MetricsSourceKind.RAW)
        aggregator = MetricsAggregator([rollup, raw])

        result = await aggregator.aggregate(resolve_period(2024), prefer=MetricsSourceKind.RAW)
        assert result.source == MetricsSourceKind.RAW

    @pytest.mark.asyncio
    async def test_unsupported_preference(self):
        aggregator = MetricsAggregator([_fake_source(MetricsSourceKind.RAW)])
        with pytest.raises(LookupError):
            await aggregator.aggregate(resolve_period(2024), prefer=MetricsSourceKind.ROLLUP)

    @pytest.mark.asyncio
    async def test_rollup_preference_rejected_for_week(self):
        rollup = _fake_source(MetricsSourceKind.ROLLUP, covers=True)
        aggregator = MetricsAggregator([rollup, _fake_source(MetricsSourceKind.RAW)])

        with pytest.raises(ValidationError) as exc_info:
            await aggregator.aggregate(resolve_period(2024, "January", 1), prefer=MetricsSourceKind.ROLLUP)

        assert exc_info.value.field == "source"
        rollup.fetch.assert_not_awaited()


class TestSources:
    """Tests for the store-backed sources."""

    def test_capabilities(self):
        store = MagicMock()
        assert RawInvoiceSource(store).capabilities == frozenset({MetricsSourceKind.RAW})
        assert RollupSource(store).capabilities == frozenset({MetricsSourceKind.ROLLUP})

    @pytest.mark.asyncio
    async def test_raw_source_fetch(self, sample_invoices):
        store = MagicMock()
        store.get_invoices = AsyncMock(return_value=sample_invoices)
        source = RawInvoiceSource(store, bulk_threshold=BULK, top_n=10)

        period = resolve_period(2024, "January")
        result = await source.fetch(period)

        store.get_invoices.assert_awaited_once_with(date(2024, 1, 1), date(2024, 1, 31))
        assert result.total_revenue == pytest.approx(33400.0)

    @pytest.mark.asyncio
    async def test_rollup_source_covers(self):
        store = MagicMock()
        store.has_rollups = AsyncMock(return_value=False)
        assert await RollupSource(store).covers(resolve_period(2024)) is False

    @pytest.mark.asyncio
    async def test_rollup_source_never_covers_week(self):
        store = MagicMock()
        store.has_rollups = AsyncMock(return_value=True)

        assert await RollupSource(store).covers(resolve_period(2024, "January", 1)) is False
        store.has_rollups.assert_not_awaited()
