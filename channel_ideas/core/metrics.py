"""Prometheus metrics for the analysis pipeline and its upstream APIs.

Provides counters and histograms for tracking:
- Upstream API call success/failure rates and latency
- Pipeline run outcomes
- Per-stage durations
"""

from prometheus_client import Counter, Histogram

# API metrics
api_calls_total = Counter(
    "api_calls_total",
    "Total external API calls",
    ["api_name", "status"],  # success/error/timeout/fallback
)

api_call_duration_seconds = Histogram(
    "api_call_duration_seconds",
    "API call duration in seconds",
    ["api_name"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total analysis pipeline runs",
    ["outcome"],  # complete/error/timeout/cancelled
)

pipeline_stage_duration_seconds = Histogram(
    "pipeline_stage_duration_seconds",
    "Duration of analysis pipeline stages in seconds",
    ["stage"],  # fetch_videos, analyze_topics, news_and_reddit, generate_ideas
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0],
)
