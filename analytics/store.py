"""
DuckDB analytics store for invoice reporting.

Holds the invoicing tables the reports read (customers, categories, items,
invoices, invoice_items) and the pre-rolled monthly fact tables.

Domain-specific query methods are organized into repository mixins:
- InvoicesMixin: raw invoice rows, option lists, monthly history
- RollupsMixin: monthly fact tables and their rebuild from raw rows
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable

import duckdb

from analytics.config import config
from analytics.exceptions import QueryTimeoutError
from analytics.observability import get_logger
from analytics.repositories import InvoicesMixin, RollupsMixin

logger = get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS customers (
    id INTEGER PRIMARY KEY,
    customer_name VARCHAR NOT NULL,
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    name VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY,
    model_no VARCHAR NOT NULL,
    category_id INTEGER
);

CREATE TABLE IF NOT EXISTS invoices (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER,
    invoice_date DATE NOT NULL,
    total_amount DECIMAL(14, 2) NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_invoices_date ON invoices(invoice_date);

CREATE TABLE IF NOT EXISTS invoice_items (
    id INTEGER PRIMARY KEY,
    invoice_id INTEGER NOT NULL,
    item_id INTEGER NOT NULL,
    quantity INTEGER NOT NULL,
    total_price DECIMAL(14, 2) NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);

-- Monthly rollups
CREATE TABLE IF NOT EXISTS sales_fact_monthly (
    month_start DATE PRIMARY KEY,
    total_revenue DECIMAL(16, 2) DEFAULT 0,
    total_orders INTEGER DEFAULT 0,
    total_units INTEGER DEFAULT 0,
    avg_order_value DECIMAL(16, 4) DEFAULT 0,
    new_customers INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS customer_bulk_monthly (
    month_start DATE PRIMARY KEY,
    bulk_orders_count INTEGER DEFAULT 0,
    bulk_orders_amount DECIMAL(16, 2) DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sales_fact_monthly_by_product (
    month_start DATE NOT NULL,
    model_no VARCHAR NOT NULL,
    category_name VARCHAR NOT NULL,
    order_count INTEGER DEFAULT 0,
    total_sales DECIMAL(16, 4) DEFAULT 0,
    PRIMARY KEY (month_start, model_no, category_name)
);

CREATE TABLE IF NOT EXISTS customer_bulk_monthly_by_name (
    month_start DATE NOT NULL,
    customer_id INTEGER NOT NULL,
    customer_name VARCHAR NOT NULL,
    bulk_orders_count INTEGER DEFAULT 0,
    bulk_orders_amount DECIMAL(16, 2) DEFAULT 0,
    average_bulk_order_value DECIMAL(16, 4) DEFAULT 0,
    model_nos VARCHAR,
    PRIMARY KEY (month_start, customer_id)
);
"""


class AnalyticsStore(InvoicesMixin, RollupsMixin):
    """
    Async-compatible DuckDB store for invoice analytics.

    Blocking DuckDB calls run on a single-worker thread pool so the event
    loop stays free; every query carries a timeout.
    """

    def __init__(self, db_path: Path = None, query_timeout: float = None):
        self.db_path = Path(db_path) if db_path else config.database.path
        self.query_timeout = query_timeout or config.database.query_timeout
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = asyncio.Lock()  # Serializes all database access
        self._executor: Optional[ThreadPoolExecutor] = None
        self._total_queries = 0

    async def connect(self) -> None:
        """Initialize database connection, schema, and thread pool."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            if self._connection is None:
                self._connection = duckdb.connect(str(self.db_path))
                self._connection.execute(SCHEMA_SQL)

                # Single worker - DuckDB requires serialized access
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="duckdb")

                logger.info(f"DuckDB connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection and thread pool."""
        async with self._lock:
            if self._executor:
                self._executor.shutdown(wait=True)
                self._executor = None

            if self._connection:
                self._connection.close()
                self._connection = None
                logger.info("DuckDB connection closed")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @asynccontextmanager
    async def connection(self):
        """Get database connection, connecting on first use.

        Holds the store lock for the duration of the block.
        """
        if self._connection is None:
            await self.connect()
        async with self._lock:
            yield self._connection

    # ─── Query Execution with Timeout ────────────────────────────────────────

    async def _run(
        self,
        work: Callable[[duckdb.DuckDBPyConnection], Any],
        query: str,
        timeout: float = None,
    ) -> Any:
        """
        Run blocking DB work on the store thread with a timeout.

        Args:
            work: Callable receiving the connection
            query: SQL text, for the timeout error message
            timeout: Timeout in seconds (defaults to the configured query timeout)

        Raises:
            QueryTimeoutError: If the work exceeds the timeout
        """
        timeout = timeout or self.query_timeout
        async with self.connection() as conn:
            self._total_queries += 1
            loop = asyncio.get_running_loop()
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(self._executor, work, conn),
                    timeout=timeout
                )
            except asyncio.TimeoutError:
                raise QueryTimeoutError(query, timeout)

    async def _fetch_one(self, query: str, params: list = None, timeout: float = None) -> Optional[tuple]:
        return await self._run(lambda conn: conn.execute(query, params or []).fetchone(), query, timeout)

    async def _fetch_all(self, query: str, params: list = None, timeout: float = None) -> List[tuple]:
        return await self._run(lambda conn: conn.execute(query, params or []).fetchall(), query, timeout)

    async def _execute_many(self, statements: List[tuple], timeout: float = None) -> None:
        """
        Execute (sql, params) statements in one transaction.

        Rolls back on any failure.
        """
        def _work(conn: duckdb.DuckDBPyConnection) -> None:
            conn.execute("BEGIN TRANSACTION")
            try:
                for sql, params in statements:
                    if params and isinstance(params[0], (list, tuple)):
                        conn.executemany(sql, params)
                    else:
                        conn.execute(sql, params or [])
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        label = statements[0][0] if statements else ""
        await self._run(_work, label, timeout)

    async def get_stats(self) -> Dict[str, Any]:
        """Row counts for health checks."""
        row = await self._fetch_one("""
            SELECT
                (SELECT COUNT(*) FROM invoices),
                (SELECT COUNT(*) FROM invoice_items),
                (SELECT COUNT(*) FROM customers),
                (SELECT COUNT(*) FROM items),
                (SELECT COUNT(*) FROM sales_fact_monthly),
                (SELECT MIN(invoice_date) FROM invoices),
                (SELECT MAX(invoice_date) FROM invoices)
        """)
        return {
            "invoices": int(row[0]),
            "invoice_items": int(row[1]),
            "customers": int(row[2]),
            "products": int(row[3]),
            "rollup_months": int(row[4]),
            "date_range": {
                "min": row[5].isoformat() if row[5] else None,
                "max": row[6].isoformat() if row[6] else None,
            },
            "total_queries": self._total_queries,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_store_instance: Optional[AnalyticsStore] = None
_store_lock = asyncio.Lock()


async def get_store() -> AnalyticsStore:
    """Get singleton store instance (coroutine-safe)."""
    global _store_instance
    async with _store_lock:
        if _store_instance is None:
            _store_instance = AnalyticsStore()
            await _store_instance.connect()
    return _store_instance


async def close_store() -> None:
    """Close singleton store instance."""
    global _store_instance
    if _store_instance:
        await _store_instance.close()
        _store_instance = None
