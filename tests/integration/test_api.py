"""
Integration tests for the HTTP API.

The app is exercised through FastAPI's TestClient with the store, the
aggregator and the forecast orchestrator replaced via dependency overrides.
Startup events are not run, so no database file is opened.
"""
import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from analytics.aggregator import MetricsAggregator
from analytics.exceptions import QuotaExceeded
from analytics.forecast import CooldownTracker, ForecastOrchestrator
from analytics.models import HistoricalMonth
from analytics.sources import RawInvoiceSource
from web.main import app
from web.routes.api._deps import (
    get_aggregator,
    get_analytics_store,
    get_orchestrator,
    limiter,
)


@pytest.fixture
def history():
    return [
        HistoricalMonth(date(2024, 1, 1), 33400.0, 4, 9, 2, 32000.0),
        HistoricalMonth(date(2024, 2, 1), 15000.0, 1, 3, 1, 15000.0),
    ]


@pytest.fixture
def fake_store(sample_invoices, history):
    store = MagicMock()
    store.get_invoices = AsyncMock(side_effect=lambda start, end: [
        invoice for invoice in sample_invoices if start <= invoice.invoice_date <= end
    ])
    store.get_available_years = AsyncMock(return_value=["2024", "2023"])
    store.get_available_months = AsyncMock(return_value=["February", "January"])
    store.get_monthly_history = AsyncMock(return_value=history)
    store.refresh_rollups = AsyncMock(return_value=2)
    store.get_stats = AsyncMock(return_value={
        "invoices": 5,
        "invoice_items": 6,
        "customers": 3,
        "products": 3,
        "rollup_months": 0,
        "date_range": {"min": "2024-01-03", "max": "2024-02-02"},
        "total_queries": 1,
    })
    return store


@pytest.fixture
def orchestrator(mock_llm_client):
    return ForecastOrchestrator(mock_llm_client, CooldownTracker(10))


@pytest.fixture
def client(fake_store, orchestrator):
    aggregator = MetricsAggregator([RawInvoiceSource(fake_store, bulk_threshold=10000, top_n=10)])
    app.dependency_overrides[get_analytics_store] = lambda: fake_store
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    limiter.enabled = False

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.enabled = True


class TestReportEndpoints:
    """Tests for /api/reports period endpoints."""

    def test_monthly_report(self, client):
        response = client.get("/api/reports/monthly/2024/January")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["totalRevenue"] == 33400.0
        assert data["numberOfOrders"] == 4
        assert data["newCustomers"] == 2
        assert data["avgBulkAmount"] == 16000.0
        assert data["topProducts"][0]["modelNo"] == "MX-100"
        assert data["topCustomers"][0]["customer"] == "Gamma Works"
        assert data["source"] == "raw"

    def test_annual_report(self, client):
        data = client.get("/api/reports/annual/2024").json()["data"]
        assert data["numberOfOrders"] == 5
        assert data["period"]["startDate"] == "2024-01-01"

    def test_weekly_report(self, client):
        data = client.get("/api/reports/weekly/2024/January/5").json()["data"]
        assert data["numberOfOrders"] == 1
        assert data["period"] == {"startDate": "2024-01-29", "endDate": "2024-01-31", "granularity": "week"}

    def test_empty_period_is_zero(self, client):
        data = client.get("/api/reports/monthly/2024/March").json()["data"]
        assert data["totalRevenue"] == 0
        assert data["topProducts"] == []

    def test_query_selector(self, client):
        response = client.get("/api/reports/metrics", params={"year": "2024", "month": "February"})
        assert response.json()["data"]["totalBulkOrders"] == 1

    def test_invalid_month(self, client):
        response = client.get("/api/reports/monthly/2024/march")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["kind"] == "invalid_month"
        assert "march" in body["details"]

    def test_invalid_week(self, client):
        response = client.get("/api/reports/weekly/2024/January/6")
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_week"

    def test_missing_week_five(self, client):
        response = client.get("/api/reports/weekly/2023/February/5")
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_week"

    def test_invalid_year(self, client):
        response = client.get("/api/reports/annual/twenty")
        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_period"

    def test_missing_year(self, client):
        response = client.get("/api/reports/metrics")
        assert response.status_code == 400

    def test_invalid_source(self, client):
        response = client.get("/api/reports/annual/2024", params={"source": "cache"})
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_unsupported_source(self, client):
        """Forcing a source the aggregator lacks is a server-side failure."""
        response = client.get("/api/reports/annual/2024", params={"source": "rollup"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Failed to fetch annual summary data"

    def test_weekly_rollup_rejected(self, client, fake_store):
        response = client.get("/api/reports/weekly/2024/January/1", params={"source": "rollup"})

        assert response.status_code == 400
        body = response.json()
        assert body["kind"] == "validation_error"
        assert "weekly" in body["details"]
        fake_store.get_invoices.assert_not_awaited()

    def test_request_id_echoed(self, client):
        response = client.get("/api/reports/annual/2024", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestOptionEndpoints:
    """Tests for selector option endpoints."""

    def test_years(self, client):
        assert client.get("/api/reports/years").json() == {"success": True, "data": ["2024", "2023"]}

    def test_months(self, client, fake_store):
        body = client.get("/api/reports/years/2024/months").json()
        assert body["data"] == ["February", "January"]
        fake_store.get_available_months.assert_awaited_once_with(2024)

    def test_weeks_are_strings(self, client):
        body = client.get("/api/reports/years/2023/months/February/weeks").json()
        assert body["data"] == ["1", "2", "3", "4"]

    def test_weeks_leap_february(self, client):
        body = client.get("/api/reports/years/2024/months/February/weeks").json()
        assert body["data"] == ["1", "2", "3", "4", "5"]

    def test_store_failure(self, client, fake_store):
        fake_store.get_available_years.side_effect = RuntimeError("database is locked")

        response = client.get("/api/reports/years")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to fetch available years"
        assert body["details"] == "database is locked"

    def test_refresh_rollups(self, client, fake_store):
        response = client.post("/api/reports/rollups/2024")

        assert response.status_code == 200
        assert response.json() == {"success": True, "year": 2024, "months_written": 2}
        fake_store.refresh_rollups.assert_awaited_once_with(2024, 10000.0)


class TestHistoryEndpoints:
    """Tests for historical series endpoints."""

    def test_historical_sales(self, client, fake_store):
        body = client.get("/api/analytics/historical-sales", params={"months": "12"}).json()

        assert body["data"][0]["month"] == "2024-01"
        assert body["data"][0]["sales"] == 33400.0
        assert fake_store.get_monthly_history.await_args.args[0] == 12

    def test_default_window(self, client, fake_store):
        client.get("/api/analytics/historical-customer-data")
        assert fake_store.get_monthly_history.await_args.args[0] == 36

    def test_window_too_large(self, client):
        response = client.get("/api/analytics/historical-sales", params={"months": "61"})
        assert response.status_code == 400
        assert "Cannot exceed 60" in response.json()["details"]


class TestForecastEndpoints:
    """Tests for forecast endpoints."""

    def test_sales_forecast(self, client):
        response = client.post(
            "/api/analytics/forecast", json={"period": 3}, headers={"X-Client-ID": "tab-1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        forecast = body["forecast"]
        assert forecast["metric"] == "revenue"
        assert forecast["totalGrowth"] == -10.0
        assert [m["momChange"] for m in forecast["monthlyBreakdown"]] == [0.0, 20.0, -25.0]

    def test_customer_bulk_forecast(self, client, mock_llm_client):
        response = client.post("/api/analytics/customer-bulk-forecast", json={"period": "3"})

        assert response.status_code == 200
        assert response.json()["forecast"]["metric"] == "bulk_amount"
        prompt = mock_llm_client.complete.await_args.args[0]
        assert "customer bulk order amount" in prompt

    def test_cooldown(self, client, mock_llm_client):
        headers = {"X-Client-ID": "tab-1"}
        client.post("/api/analytics/forecast", json={"period": 1}, headers=headers)

        response = client.post("/api/analytics/forecast", json={"period": 1}, headers=headers)

        assert response.status_code == 429
        body = response.json()
        assert body["kind"] == "cooldown_active"
        assert 1 <= body["remainingSeconds"] <= 10
        assert response.headers["Retry-After"] == str(body["remainingSeconds"])
        assert mock_llm_client.complete.await_count == 1

    def test_cooldown_is_per_client(self, client):
        client.post("/api/analytics/forecast", json={"period": 1}, headers={"X-Client-ID": "tab-1"})
        response = client.post(
            "/api/analytics/forecast", json={"period": 1}, headers={"X-Client-ID": "tab-2"}
        )
        assert response.status_code == 200

    def test_invalid_period(self, client, mock_llm_client):
        response = client.post("/api/analytics/forecast", json={"period": 2})

        assert response.status_code == 400
        assert response.json()["success"] is False
        mock_llm_client.complete.assert_not_awaited()

    def test_missing_period(self, client):
        response = client.post("/api/analytics/forecast", json={})
        assert response.status_code == 400

    def test_model_failure(self, client, mock_llm_client):
        mock_llm_client.complete.side_effect = QuotaExceeded("Forecast quota exceeded")

        response = client.post("/api/analytics/forecast", json={"period": 3})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["kind"] == "quota_exceeded"
        assert body["suggestions"][0] == "AI service quota has been exceeded"

    def test_failure_allows_retry(self, client, mock_llm_client, forecast_reply):
        headers = {"X-Client-ID": "tab-1"}
        mock_llm_client.complete.side_effect = QuotaExceeded("Forecast quota exceeded")
        client.post("/api/analytics/forecast", json={"period": 3}, headers=headers)

        mock_llm_client.complete.side_effect = None
        mock_llm_client.complete.return_value = forecast_reply
        response = client.post("/api/analytics/forecast", json={"period": 3}, headers=headers)

        assert response.status_code == 200

    def test_empty_history(self, client, fake_store):
        fake_store.get_monthly_history.return_value = []

        response = client.post("/api/analytics/forecast", json={"period": 3})

        assert response.status_code == 500
        assert response.json()["error"] == "No historical data available for forecasting"


class TestHealthEndpoints:
    """Tests for health and metrics endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert isinstance(body["forecast_available"], bool)
        assert body["duckdb"]["status"] == "connected"

    def test_metrics(self, client):
        client.get("/api/reports/years")
        body = client.get("/api/metrics").json()
        assert "GET /api/reports/years" in body["requests"]

    def test_metrics_keyed_by_route_template(self, client):
        client.get("/api/reports/monthly/2024/January")
        client.get("/api/reports/monthly/2024/February")

        requests = client.get("/api/metrics").json()["requests"]

        assert "GET /api/reports/monthly/{year}/{month}" in requests
        assert "GET /api/reports/monthly/2024/January" not in requests
