"""
Web server configuration.
"""
from analytics.config import config, VERSION

# Web server settings
WEB_HOST = config.web.host
WEB_PORT = config.web.port

# Rate limits
REPORTS_RATE_LIMIT = config.web.reports_rate_limit
FORECAST_RATE_LIMIT = config.web.forecast_rate_limit

__all__ = ["WEB_HOST", "WEB_PORT", "REPORTS_RATE_LIMIT", "FORECAST_RATE_LIMIT", "VERSION"]
