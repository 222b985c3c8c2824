"""Prometheus metrics instrumentation for the translation relay.

Exposes metrics for monitoring session load, audio throughput, upstream
health and analytics write failures. Metrics are exposed via HTTP
on port 8001 (configurable) when METRICS_ENABLED is set.

Metrics exported:
- relay_active_sessions: Gauge of sessions with a live relay
- relay_frames_forwarded_total: Counter of audio frames sent upstream
- relay_frames_rejected_total: Counter of frames refused at ingest, by reason
- relay_queue_depth: Histogram of queue depth observed at enqueue
- relay_upstream_errors_total: Counter of upstream failures, by kind
- relay_utterance_latency_seconds: Histogram of speech-stopped -> turn-complete
- relay_translation_log_failures_total: Counter of failed analytics writes
- relay_audio_chunk_failures_total: Counter of failed audio chunk writes

Usage:
    from app.services.metrics import start_metrics_server, frames_forwarded

    start_metrics_server(port=8001)
    frames_forwarded.inc()
"""

from prometheus_client import Histogram, Counter, Gauge, start_http_server
import logging

logger = logging.getLogger(__name__)

# Sessions currently owned by a relay in this process
active_sessions_gauge = Gauge(
    'relay_active_sessions',
    'Number of sessions with a live relay connection'
)

# Audio throughput
frames_forwarded = Counter(
    'relay_frames_forwarded_total',
    'Total audio frames forwarded to the upstream provider'
)

frames_rejected = Counter(
    'relay_frames_rejected_total',
    'Audio frames refused at ingest',
    labelnames=['reason']  # reason: not_initialized, upstream_unavailable, overloaded, out_of_order
)

queue_depth = Histogram(
    'relay_queue_depth',
    'Audio queue depth observed at enqueue',
    buckets=(0, 1, 2, 5, 10, 25, 50, 100, 250, 500)
)

# Upstream health
upstream_errors = Counter(
    'relay_upstream_errors_total',
    'Upstream provider failures',
    labelnames=['kind']  # kind: dial, runtime, closed
)

utterance_latency = Histogram(
    'relay_utterance_latency_seconds',
    'Time from end of speech to end of translated audio',
    labelnames=['language_pair']
)

# Analytics
translation_log_failures = Counter(
    'relay_translation_log_failures_total',
    'Translation log writes that failed and were dropped'
)

audio_chunk_failures = Counter(
    'relay_audio_chunk_failures_total',
    'Audio chunk writes that failed and were dropped'
)


def start_metrics_server(port: int = 8001):
    """Start Prometheus metrics HTTP server."""
    try:
        start_http_server(port)
        logger.info(f"✅ Metrics server started on port {port}")
    except Exception as e:
        logger.error(f"❌ Failed to start metrics server: {e}")
