"""
Repository mixins for AnalyticsStore.

- InvoicesMixin: raw invoice rows, period option lists, monthly history
- RollupsMixin: monthly fact tables and their rebuild from raw rows
"""
from analytics.repositories.invoices import InvoicesMixin
from analytics.repositories.rollups import RollupsMixin

__all__ = [
    "InvoicesMixin",
    "RollupsMixin",
]
