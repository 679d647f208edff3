"""
Pytest configuration and shared fixtures.

The invoice fixtures describe January 2024 (plus one February invoice):

    id  date        customer  total   lines (model: qty x subtotal)
    1   2024-01-03  Acme      12000   MX-100: 2 x 10000, MX-200: 1 x 5000
    2   2024-01-10  Beta        500   MX-200: 1 x 500
    3   2024-01-15  Gamma     20000   MX-300: 4 x 20000
    4   2024-01-29  Acme        900   MX-100: 1 x 1000
    5   2024-02-02  Beta      15000   MX-100: 3 x 15000

January: revenue 33400, 4 orders, 9 units, 2 new customers (Beta, Gamma),
2 bulk orders worth 32000.
"""
import pytest
from datetime import date, datetime
from typing import List
from unittest.mock import AsyncMock, MagicMock

from analytics.models import Customer, Invoice, InvoiceItem, Product


@pytest.fixture
def products():
    """Catalog items; MX-300 has no category."""
    return {
        "MX-100": Product(101, "MX-100", "Pumps"),
        "MX-200": Product(102, "MX-200", "Valves"),
        "MX-300": Product(103, "MX-300", None),
    }


@pytest.fixture
def customers():
    return {
        "acme": Customer(1, "Acme Trading", datetime(2023, 6, 1, 9, 0)),
        "beta": Customer(2, "Beta Supplies", datetime(2024, 1, 5, 14, 30)),
        "gamma": Customer(3, "Gamma Works", datetime(2024, 1, 20, 8, 0)),
    }


@pytest.fixture
def sample_invoices(products, customers) -> List[Invoice]:
    """Four January invoices and one February invoice."""
    return [
        Invoice(
            1, date(2024, 1, 3), 12000.0, customers["acme"],
            (
                InvoiceItem(11, products["MX-100"], 2, 10000.0),
                InvoiceItem(12, products["MX-200"], 1, 5000.0),
            ),
        ),
        Invoice(
            2, date(2024, 1, 10), 500.0, customers["beta"],
            (InvoiceItem(21, products["MX-200"], 1, 500.0),),
        ),
        Invoice(
            3, date(2024, 1, 15), 20000.0, customers["gamma"],
            (InvoiceItem(31, products["MX-300"], 4, 20000.0),),
        ),
        Invoice(
            4, date(2024, 1, 29), 900.0, customers["acme"],
            (InvoiceItem(41, products["MX-100"], 1, 1000.0),),
        ),
        Invoice(
            5, date(2024, 2, 2), 15000.0, customers["beta"],
            (InvoiceItem(51, products["MX-100"], 3, 15000.0),),
        ),
    ]


@pytest.fixture
def january_invoices(sample_invoices) -> List[Invoice]:
    return [invoice for invoice in sample_invoices if invoice.invoice_date.month == 1]


@pytest.fixture
def forecast_reply() -> str:
    """Well-formed model reply for a 3-month revenue forecast."""
    return """```json
{
  "monthlyBreakdown": [
    {"month": "2024-03", "predicted": 10000, "predictedOrders": 12, "topProducts": ["MX-100"]},
    {"month": "2024-04", "predicted": 12000, "topProducts": ["MX-100", "MX-200"]},
    {"month": "2024-05", "predicted": 9000, "topProducts": []}
  ],
  "totalGrowth": -10,
  "insights": ["Demand peaks in April"],
  "recommendations": ["Stock MX-100 ahead of April"]
}
```"""


@pytest.fixture
def mock_llm_client(forecast_reply):
    """LLM client returning the well-formed forecast reply."""
    client = MagicMock()
    client.is_available = True
    client.complete = AsyncMock(return_value=forecast_reply)
    return client
