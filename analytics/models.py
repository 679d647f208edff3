"""
Domain models for sales analytics.

Read-only views of the invoicing tables (Invoice, InvoiceItem, Product,
Customer) plus the derived, never-persisted value objects produced by the
reporting core (Period, AggregationResult, ForecastResult).
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Union


UNCATEGORIZED = "Uncategorized"
NO_MODELS = "N/A"


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class Granularity(str, Enum):
    """Size of the aggregation window."""
    YEAR = "year"
    MONTH = "month"
    WEEK = "week"


class MetricsSourceKind(str, Enum):
    """Where an AggregationResult was computed from."""
    RAW = "raw"
    ROLLUP = "rollup"


class ForecastMetric(str, Enum):
    """Metric predicted by a forecast request."""
    REVENUE = "revenue"
    BULK_AMOUNT = "bulk_amount"

    @property
    def history_field(self) -> str:
        """HistoricalMonth attribute holding this metric."""
        return {
            ForecastMetric.REVENUE: "total_revenue",
            ForecastMetric.BULK_AMOUNT: "bulk_orders_amount",
        }[self]

    @property
    def display_name(self) -> str:
        return {
            ForecastMetric.REVENUE: "sales revenue",
            ForecastMetric.BULK_AMOUNT: "customer bulk order amount",
        }[self]


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE ENTITIES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Product:
    """Catalog item referenced by invoice lines."""
    id: int
    model_no: str
    category_name: Optional[str] = None

    @property
    def category(self) -> str:
        return self.category_name or UNCATEGORIZED


@dataclass(frozen=True)
class Customer:
    """Customer account."""
    id: int
    name: str
    created_at: Optional[datetime] = None

    def is_new_in(self, month_of: date) -> bool:
        """Check if the account was created in the same calendar month as ``month_of``."""
        if self.created_at is None:
            return False
        return (self.created_at.year, self.created_at.month) == (month_of.year, month_of.month)


@dataclass(frozen=True)
class InvoiceItem:
    """Invoice line; total_price is the pre-discount line subtotal."""
    id: int
    product: Product
    quantity: int
    total_price: float


@dataclass(frozen=True)
class Invoice:
    """Invoice header; total_amount is already net of any header discount."""
    id: int
    invoice_date: date
    total_amount: float
    customer: Optional[Customer] = None
    items: tuple = ()

    @property
    def subtotal(self) -> float:
        """Sum of pre-discount line subtotals."""
        return sum(item.total_price for item in self.items)

    @property
    def units(self) -> int:
        return sum(item.quantity for item in self.items)


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED VALUE OBJECTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Period:
    """Resolved, inclusive date range used as the aggregation window."""
    start_date: date
    end_date: date
    granularity: Granularity

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> Dict[str, str]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "granularity": self.granularity.value,
        }


@dataclass
class TopProduct:
    """Product ranking row."""
    model_no: str
    category: str
    order_count: int
    total_sales: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelNo": self.model_no,
            "category": self.category,
            "orderCount": self.order_count,
            "sales": round(self.total_sales, 2),
        }


@dataclass
class TopCustomer:
    """Bulk-buyer ranking row."""
    customer_name: str
    bulk_orders_count: int
    bulk_orders_amount: float
    model_nos: List[str] = field(default_factory=list)
    customer_id: Optional[int] = None

    @property
    def average_bulk_order_value(self) -> float:
        if self.bulk_orders_count <= 0:
            return 0.0
        return self.bulk_orders_amount / self.bulk_orders_count

    @property
    def model_no(self) -> str:
        """Comma-joined distinct model numbers, or N/A."""
        return ", ".join(self.model_nos) if self.model_nos else NO_MODELS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer": self.customer_name,
            "bulkCount": self.bulk_orders_count,
            "bulkAmount": round(self.bulk_orders_amount, 2),
            "avgBulkAmount": round(self.average_bulk_order_value, 2),
            "modelNo": self.model_no,
        }


@dataclass
class AggregationResult:
    """All metrics computed for one Period."""
    period: Period
    total_revenue: float = 0.0
    total_orders: int = 0
    total_units: int = 0
    avg_order_value: float = 0.0
    new_customers: int = 0
    bulk_orders_count: int = 0
    bulk_orders_amount: float = 0.0
    avg_bulk_amount: float = 0.0
    top_products: List[TopProduct] = field(default_factory=list)
    top_customers: List[TopCustomer] = field(default_factory=list)
    source: MetricsSourceKind = MetricsSourceKind.RAW

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase report payload."""
        return {
            "totalRevenue": round(self.total_revenue, 2),
            "numberOfOrders": self.total_orders,
            "totalUnits": self.total_units,
            "avgOrderValue": round(self.avg_order_value, 2),
            "newCustomers": self.new_customers,
            "totalBulkOrders": self.bulk_orders_count,
            "totalBulkAmount": round(self.bulk_orders_amount, 2),
            "avgBulkAmount": round(self.avg_bulk_amount, 2),
            "topProducts": [p.to_dict() for p in self.top_products],
            "topCustomers": [c.to_dict() for c in self.top_customers],
            "period": self.period.to_dict(),
            "source": self.source.value,
        }


@dataclass
class HistoricalMonth:
    """One month of header-level history fed to the forecaster."""
    month_start: date
    total_revenue: float = 0.0
    total_orders: int = 0
    total_units: int = 0
    bulk_orders_count: int = 0
    bulk_orders_amount: float = 0.0

    @property
    def label(self) -> str:
        return self.month_start.strftime("%Y-%m")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.label,
            "sales": round(self.total_revenue, 2),
            "orders": self.total_orders,
            "units": self.total_units,
            "bulkOrdersCount": self.bulk_orders_count,
            "bulkOrdersAmount": round(self.bulk_orders_amount, 2),
        }


@dataclass
class MonthlyPrediction:
    """One forecasted month."""
    month: str
    predicted: float
    mom_change: float = 0.0
    values: Dict[str, float] = field(default_factory=dict)
    top_products: List[Union[str, Dict[str, Any]]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "predicted": round(self.predicted, 2),
            "momChange": self.mom_change,
            "values": {k: round(v, 2) for k, v in self.values.items()},
            "topProducts": self.top_products,
        }


@dataclass
class ForecastResult:
    """Validated forecast with derived growth figures."""
    metric: ForecastMetric
    period_count: int
    monthly_breakdown: List[MonthlyPrediction]
    total_growth: float
    insights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def total_predicted(self) -> float:
        return sum(p.predicted for p in self.monthly_breakdown)

    @property
    def avg_monthly(self) -> float:
        if not self.monthly_breakdown:
            return 0.0
        return self.total_predicted / len(self.monthly_breakdown)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": f"{self.period_count} months",
            "metric": self.metric.value,
            "totalPredicted": round(self.total_predicted, 2),
            "avgMonthly": round(self.avg_monthly, 2),
            "totalGrowth": self.total_growth,
            "monthlyBreakdown": [p.to_dict() for p in self.monthly_breakdown],
            "insights": self.insights,
            "recommendations": self.recommendations,
            "generatedAt": self.generated_at.isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# MONTHLY ROLLUP ROWS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class SalesRollup:
    """One row of the monthly sales + bulk fact tables."""
    month_start: date
    total_revenue: float = 0.0
    total_orders: int = 0
    total_units: int = 0
    avg_order_value: float = 0.0
    new_customers: int = 0
    bulk_orders_count: int = 0
    bulk_orders_amount: float = 0.0


@dataclass
class ProductRollup:
    """One row of the monthly per-product fact table."""
    month_start: date
    model_no: str
    category_name: str
    order_count: int
    total_sales: float


@dataclass
class CustomerRollup:
    """One row of the monthly per-customer bulk fact table."""
    month_start: date
    customer_id: int
    customer_name: str
    bulk_orders_count: int
    bulk_orders_amount: float
    model_nos: List[str] = field(default_factory=list)
