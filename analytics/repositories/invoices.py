"""AnalyticsStore invoice methods: raw rows, period options, monthly history."""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Sequence

from analytics.models import Customer, HistoricalMonth, Invoice, InvoiceItem, Product
from analytics.periods import MONTH_NAMES, shift_month
from analytics.repositories.rollups import ROLLUP_TABLES


class InvoicesMixin:

    async def get_invoices(self, start_date: date, end_date: date) -> List[Invoice]:
        """
        Load invoices dated within [start_date, end_date] with their lines.

        Customer, product and category rows are attached; invoices with no
        lines are returned with an empty items tuple.
        """
        rows = await self._fetch_all("""
            SELECT
                i.id, i.invoice_date, i.total_amount,
                c.id, c.customer_name, c.created_at,
                li.id, li.item_id, li.quantity, li.total_price,
                it.model_no, cat.name
            FROM invoices i
            LEFT JOIN customers c ON c.id = i.customer_id
            LEFT JOIN invoice_items li ON li.invoice_id = i.id
            LEFT JOIN items it ON it.id = li.item_id
            LEFT JOIN categories cat ON cat.id = it.category_id
            WHERE i.invoice_date BETWEEN ? AND ?
            ORDER BY i.id, li.id
        """, [start_date, end_date])

        headers: Dict[int, tuple] = {}
        lines: Dict[int, List[InvoiceItem]] = {}
        for row in rows:
            (invoice_id, invoice_date, total_amount,
             customer_id, customer_name, created_at,
             line_id, item_id, quantity, total_price,
             model_no, category_name) = row

            if invoice_id not in headers:
                customer = None
                if customer_id is not None:
                    customer = Customer(customer_id, customer_name, created_at)
                headers[invoice_id] = (invoice_date, float(total_amount), customer)
                lines[invoice_id] = []

            if line_id is not None:
                product = Product(item_id, model_no or str(item_id), category_name)
                lines[invoice_id].append(
                    InvoiceItem(line_id, product, int(quantity), float(total_price))
                )

        return [
            Invoice(invoice_id, invoice_date, total_amount, customer, tuple(lines[invoice_id]))
            for invoice_id, (invoice_date, total_amount, customer) in headers.items()
        ]

    async def get_available_years(self) -> List[str]:
        """Years with invoices or rollup rows, newest first."""
        rows = await self._fetch_all("""
            SELECT DISTINCT year FROM (
                SELECT CAST(EXTRACT(YEAR FROM invoice_date) AS INTEGER) AS year FROM invoices
                UNION
                SELECT CAST(EXTRACT(YEAR FROM month_start) AS INTEGER) AS year FROM sales_fact_monthly
            )
            ORDER BY year DESC
        """)
        return [str(row[0]) for row in rows]

    async def get_available_months(self, year: int) -> List[str]:
        """Month names with data in ``year``, latest month first."""
        rows = await self._fetch_all("""
            SELECT DISTINCT month FROM (
                SELECT CAST(EXTRACT(MONTH FROM invoice_date) AS INTEGER) AS month
                FROM invoices WHERE EXTRACT(YEAR FROM invoice_date) = ?
                UNION
                SELECT CAST(EXTRACT(MONTH FROM month_start) AS INTEGER) AS month
                FROM sales_fact_monthly WHERE EXTRACT(YEAR FROM month_start) = ?
            )
            ORDER BY month DESC
        """, [year, year])
        return [MONTH_NAMES[row[0] - 1] for row in rows]

    async def get_latest_invoice_date(self) -> Optional[date]:
        row = await self._fetch_one("SELECT MAX(invoice_date) FROM invoices")
        return row[0] if row else None

    async def get_monthly_history(
        self,
        months: int,
        bulk_threshold: float,
        end_month: Optional[date] = None,
    ) -> List[HistoricalMonth]:
        """
        Header-level monthly series for the trailing ``months`` months.

        The window ends at ``end_month`` (default: the month of the latest
        invoice). Months without invoices are included as zero rows so the
        series is contiguous.

        Args:
            months: Number of months in the window
            bulk_threshold: Minimum invoice total counted as a bulk order
            end_month: Any date inside the last month of the window

        Returns:
            List of HistoricalMonth ordered oldest first; empty when there
            are no invoices at all and no end_month was given.
        """
        if end_month is None:
            end_month = await self.get_latest_invoice_date()
            if end_month is None:
                return []

        last = end_month.replace(day=1)
        first = shift_month(last, -(months - 1))
        window_end = shift_month(last, 1)

        rows = await self._fetch_all("""
            WITH units AS (
                SELECT invoice_id, SUM(quantity) AS units
                FROM invoice_items
                GROUP BY invoice_id
            )
            SELECT
                CAST(DATE_TRUNC('month', i.invoice_date) AS DATE) AS month_start,
                SUM(i.total_amount) AS revenue,
                COUNT(*) AS orders,
                COALESCE(SUM(u.units), 0) AS units,
                COUNT(*) FILTER (WHERE i.total_amount >= ?) AS bulk_count,
                COALESCE(SUM(i.total_amount) FILTER (WHERE i.total_amount >= ?), 0) AS bulk_amount
            FROM invoices i
            LEFT JOIN units u ON u.invoice_id = i.id
            WHERE i.invoice_date >= ? AND i.invoice_date < ?
            GROUP BY 1
            ORDER BY 1
        """, [bulk_threshold, bulk_threshold, first, window_end])

        by_month = {
            row[0]: HistoricalMonth(
                month_start=row[0],
                total_revenue=float(row[1] or 0),
                total_orders=int(row[2] or 0),
                total_units=int(row[3] or 0),
                bulk_orders_count=int(row[4] or 0),
                bulk_orders_amount=float(row[5] or 0),
            )
            for row in rows
        }

        return [
            by_month.get(shift_month(first, offset), HistoricalMonth(shift_month(first, offset)))
            for offset in range(months)
        ]

    # ─── Loading ────────────────────────────────────────────────────────────

    async def upsert_invoices(self, invoices: Sequence[Invoice]) -> int:
        """
        Insert or replace invoices with their customers, products and lines.

        Category ids are assigned by name. Rollup rows for every month the
        invoices land in (or are moved out of) are dropped, so reports read
        raw rows for those months until the next rebuild.

        Returns number of invoices written.
        """
        if not invoices:
            return 0

        touched_months = {invoice.invoice_date.replace(day=1) for invoice in invoices}
        placeholders = ", ".join("?" for _ in invoices)
        previous = await self._fetch_all(
            f"SELECT DISTINCT invoice_date FROM invoices WHERE id IN ({placeholders})",
            [invoice.id for invoice in invoices]
        )
        touched_months.update(row[0].replace(day=1) for row in previous)

        category_names = sorted({
            item.product.category_name
            for invoice in invoices
            for item in invoice.items
            if item.product.category_name
        })
        existing = await self._fetch_all("SELECT id, name FROM categories")
        category_ids = {name: cid for cid, name in existing}
        next_id = max(category_ids.values(), default=0) + 1
        new_categories = []
        for name in category_names:
            if name not in category_ids:
                category_ids[name] = next_id
                new_categories.append((next_id, name))
                next_id += 1

        customers = {
            invoice.customer.id: (invoice.customer.id, invoice.customer.name, invoice.customer.created_at)
            for invoice in invoices
            if invoice.customer is not None
        }
        products = {
            item.product.id: (
                item.product.id,
                item.product.model_no,
                category_ids.get(item.product.category_name),
            )
            for invoice in invoices
            for item in invoice.items
        }
        headers = [
            (
                invoice.id,
                invoice.customer.id if invoice.customer else None,
                invoice.invoice_date,
                invoice.total_amount,
            )
            for invoice in invoices
        ]
        invoice_ids = [(invoice.id,) for invoice in invoices]
        lines = [
            (item.id, invoice.id, item.product.id, item.quantity, item.total_price)
            for invoice in invoices
            for item in invoice.items
        ]

        statements = [
            ("INSERT OR REPLACE INTO customers VALUES (?, ?, ?)", list(customers.values())),
            ("INSERT OR REPLACE INTO items VALUES (?, ?, ?)", list(products.values())),
            ("DELETE FROM invoice_items WHERE invoice_id = ?", invoice_ids),
            ("INSERT OR REPLACE INTO invoices VALUES (?, ?, ?, ?)", headers),
            ("INSERT OR REPLACE INTO invoice_items VALUES (?, ?, ?, ?, ?)", lines),
        ]
        if new_categories:
            statements.insert(0, ("INSERT INTO categories VALUES (?, ?)", new_categories))
        stale = [(month,) for month in sorted(touched_months)]
        statements.extend(
            (f"DELETE FROM {table} WHERE month_start = ?", stale) for table in ROLLUP_TABLES
        )

        await self._execute_many([(sql, params) for sql, params in statements if params])
        return len(invoices)
