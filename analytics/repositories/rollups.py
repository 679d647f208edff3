"""AnalyticsStore monthly rollup methods."""
from __future__ import annotations

from datetime import date
from typing import List, Sequence

from analytics.aggregator import aggregate_invoices, rollup_rows_from_result
from analytics.bulk_average import sanitize_bulk_average
from analytics.models import CustomerRollup, ProductRollup, SalesRollup
from analytics.observability import get_logger
from analytics.periods import month_periods

logger = get_logger(__name__)

ROLLUP_TABLES = (
    "sales_fact_monthly",
    "customer_bulk_monthly",
    "sales_fact_monthly_by_product",
    "customer_bulk_monthly_by_name",
)


class RollupsMixin:

    async def has_rollups(self, start_date: date, end_date: date) -> bool:
        """
        Check if the rollups cover the range.

        True when the range holds at least one rollup month and every month
        with invoices in the range has its sales_fact_monthly row.
        """
        row = await self._fetch_one("""
            SELECT
                (SELECT COUNT(*) FROM sales_fact_monthly
                 WHERE month_start BETWEEN ? AND ?),
                (SELECT COUNT(DISTINCT DATE_TRUNC('month', i.invoice_date))
                 FROM invoices i
                 WHERE i.invoice_date BETWEEN ? AND ?
                   AND NOT EXISTS (
                       SELECT 1 FROM sales_fact_monthly s
                       WHERE s.month_start = CAST(DATE_TRUNC('month', i.invoice_date) AS DATE)
                   ))
        """, [start_date.replace(day=1), end_date, start_date, end_date])
        return bool(row and row[0] and not row[1])

    async def get_sales_rollups(self, start_date: date, end_date: date) -> List[SalesRollup]:
        rows = await self._fetch_all("""
            SELECT
                s.month_start, s.total_revenue, s.total_orders, s.total_units,
                s.avg_order_value, s.new_customers,
                COALESCE(b.bulk_orders_count, 0), COALESCE(b.bulk_orders_amount, 0)
            FROM sales_fact_monthly s
            LEFT JOIN customer_bulk_monthly b ON b.month_start = s.month_start
            WHERE s.month_start BETWEEN ? AND ?
            ORDER BY s.month_start
        """, [start_date.replace(day=1), end_date])
        return [
            SalesRollup(
                month_start=row[0],
                total_revenue=float(row[1] or 0),
                total_orders=int(row[2] or 0),
                total_units=int(row[3] or 0),
                avg_order_value=float(row[4] or 0),
                new_customers=int(row[5] or 0),
                bulk_orders_count=int(row[6] or 0),
                bulk_orders_amount=float(row[7] or 0),
            )
            for row in rows
        ]

    async def get_product_rollups(self, start_date: date, end_date: date) -> List[ProductRollup]:
        rows = await self._fetch_all("""
            SELECT month_start, model_no, category_name, order_count, total_sales
            FROM sales_fact_monthly_by_product
            WHERE month_start BETWEEN ? AND ?
            ORDER BY month_start, model_no, category_name
        """, [start_date.replace(day=1), end_date])
        return [
            ProductRollup(row[0], row[1], row[2], int(row[3] or 0), float(row[4] or 0))
            for row in rows
        ]

    async def get_customer_rollups(self, start_date: date, end_date: date) -> List[CustomerRollup]:
        rows = await self._fetch_all("""
            SELECT month_start, customer_id, customer_name,
                   bulk_orders_count, bulk_orders_amount, model_nos
            FROM customer_bulk_monthly_by_name
            WHERE month_start BETWEEN ? AND ?
            ORDER BY month_start, customer_id
        """, [start_date.replace(day=1), end_date])
        return [
            CustomerRollup(
                month_start=row[0],
                customer_id=int(row[1]),
                customer_name=row[2],
                bulk_orders_count=int(row[3] or 0),
                bulk_orders_amount=float(row[4] or 0),
                model_nos=[m for m in (row[5] or "").split(", ") if m],
            )
            for row in rows
        ]

    async def replace_month_rollups(
        self,
        month_start: date,
        sales: SalesRollup,
        products: Sequence[ProductRollup],
        customers: Sequence[CustomerRollup],
    ) -> None:
        """Atomically replace every rollup row of one month."""
        statements = [
            (f"DELETE FROM {table} WHERE month_start = ?", [month_start])
            for table in ROLLUP_TABLES
        ]
        statements.append((
            "INSERT INTO sales_fact_monthly VALUES (?, ?, ?, ?, ?, ?)",
            [
                sales.month_start, sales.total_revenue, sales.total_orders,
                sales.total_units, sales.avg_order_value, sales.new_customers,
            ],
        ))
        statements.append((
            "INSERT INTO customer_bulk_monthly VALUES (?, ?, ?)",
            [sales.month_start, sales.bulk_orders_count, sales.bulk_orders_amount],
        ))
        if products:
            statements.append((
                "INSERT INTO sales_fact_monthly_by_product VALUES (?, ?, ?, ?, ?)",
                [
                    (p.month_start, p.model_no, p.category_name, p.order_count, p.total_sales)
                    for p in products
                ],
            ))
        if customers:
            statements.append((
                "INSERT INTO customer_bulk_monthly_by_name VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        c.month_start, c.customer_id, c.customer_name,
                        c.bulk_orders_count, c.bulk_orders_amount,
                        sanitize_bulk_average(c.bulk_orders_count, c.bulk_orders_amount, c.bulk_orders_count),
                        ", ".join(c.model_nos),
                    )
                    for c in customers
                ],
            ))
        await self._execute_many(statements)

    async def clear_month_rollups(self, month_start: date) -> None:
        await self._execute_many([
            (f"DELETE FROM {table} WHERE month_start = ?", [month_start])
            for table in ROLLUP_TABLES
        ])

    async def refresh_rollups(self, year: int, bulk_threshold: float) -> int:
        """
        Rebuild the four monthly fact tables for one year from raw invoices.

        Each month goes through the raw aggregation pipeline untruncated, so
        combining the stored rows gives the same figures as a raw scan.
        Months without invoices lose any stale rollup rows.

        Returns:
            Number of months written
        """
        written = 0
        for period in month_periods(year):
            invoices = await self.get_invoices(period.start_date, period.end_date)
            if not invoices:
                await self.clear_month_rollups(period.start_date)
                continue

            result = aggregate_invoices(invoices, period, bulk_threshold=bulk_threshold, top_n=None)
            sales, products, customers = rollup_rows_from_result(result)
            await self.replace_month_rollups(period.start_date, sales, products, customers)
            written += 1

        logger.info(f"Rollups refreshed for {year}", extra={"months": written})
        return written
