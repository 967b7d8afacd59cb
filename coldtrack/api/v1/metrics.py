"""
Prometheus metrics endpoint.
Exposes monitor metrics for Prometheus scraping.
"""
from fastapi import APIRouter, Response
from prometheus_client import (
    Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
)

router = APIRouter(tags=["Metrics"])

# Counters
live_readings_total = Counter(
    "coldtrack_live_readings_total",
    "Live feed values received, by outcome",
    ["outcome"]
)

feed_subscriptions_total = Counter(
    "coldtrack_feed_subscriptions_total",
    "Live feed subscriptions opened"
)

analytics_queries_total = Counter(
    "coldtrack_analytics_queries_total",
    "Executive analytics queries, by outcome",
    ["outcome"]
)

reports_emitted_total = Counter(
    "coldtrack_reports_emitted_total",
    "Report artifacts emitted",
    ["format", "status"]
)

# Histograms
analytics_query_latency_seconds = Histogram(
    "coldtrack_analytics_query_latency_seconds",
    "Executive analytics backend latency in seconds"
)


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    Returns metrics in Prometheus text format.
    No authentication required - designed for Prometheus scraper.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
