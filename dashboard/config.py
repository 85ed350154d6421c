"""
Web dashboard configuration.
"""
from analytics.config import config, VERSION

# Web server settings
WEB_HOST = config.web.host
WEB_PORT = config.web.port

# Rate limiting
RATE_LIMIT = config.web.rate_limit
RATE_LIMIT_ENABLED = config.web.rate_limit_enabled

REQUEST_TIMEOUT = config.web.request_timeout

# Export endpoints are heavier; keep them on a tighter limit
EXPORT_RATE_LIMIT = "10/minute"

__all__ = [
    "WEB_HOST",
    "WEB_PORT",
    "RATE_LIMIT",
    "RATE_LIMIT_ENABLED",
    "REQUEST_TIMEOUT",
    "EXPORT_RATE_LIMIT",
    "VERSION",
]
