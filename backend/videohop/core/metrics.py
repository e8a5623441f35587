"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name, documentation, labelnames):
    # Module reloads (tests, uvicorn --reload) must not re-register collectors
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Upload metrics
successful_uploads_counter = _counter(
    'videohop_successful_uploads_total',
    'Total number of successful video uploads',
    ['platform']
)

failed_uploads_counter = _counter(
    'videohop_failed_uploads_total',
    'Total number of failed video uploads',
    ['platform']
)

# Token metrics
token_refresh_counter = _counter(
    'videohop_token_refreshes_total',
    'Total number of OAuth token refresh attempts',
    ['platform', 'status']
)
