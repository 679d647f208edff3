"""
Bulk-order average with a guard against line-level counts.

Some rollup sources count invoice *lines* in bulk_orders_count instead of
invoices, which inflates the divisor's meaning. When the count is
inconsistent, the period's invoice count is used as the divisor instead.
"""
from typing import Union

from analytics.observability import get_logger

logger = get_logger(__name__)

Number = Union[int, float]


def is_line_count_contaminated(
    bulk_orders_count: Number,
    bulk_orders_amount: Number,
    fallback_order_count: Number,
) -> bool:
    """
    Decide whether bulk_orders_count cannot be a true invoice count.

    Two signals:
    - the per-order average exceeds the total amount (the historical check;
      only reachable when the count is fractional), or
    - there are more bulk orders than invoices in the whole period.
    """
    if bulk_orders_count <= 0:
        return False

    naive_avg = bulk_orders_amount / bulk_orders_count
    if naive_avg > bulk_orders_amount:
        return True

    return fallback_order_count > 0 and bulk_orders_count > fallback_order_count


def sanitize_bulk_average(
    bulk_orders_count: Number,
    bulk_orders_amount: Number,
    fallback_order_count: Number,
) -> float:
    """
    Average bulk order amount, full precision.

    Args:
        bulk_orders_count: Bulk order count as reported by the source
        bulk_orders_amount: Total amount of bulk orders
        fallback_order_count: Total invoices in the period

    Returns:
        amount / count, or amount / fallback_order_count when the count is
        contaminated, or 0 when there is nothing to divide by.
    """
    if bulk_orders_count <= 0:
        return 0.0

    if is_line_count_contaminated(bulk_orders_count, bulk_orders_amount, fallback_order_count):
        logger.warning(
            "Bulk order count looks line-level, using invoice count instead",
            extra={
                "bulk_orders_count": bulk_orders_count,
                "fallback_order_count": fallback_order_count,
            }
        )
        if fallback_order_count <= 0:
            return 0.0
        return bulk_orders_amount / fallback_order_count

    return bulk_orders_amount / bulk_orders_count

