"""CloudWatch custom metrics for LLM provider calls, with background batching.

Every vendor request made by a provider is recorded: request count by
status, latency, token usage and estimated cost per provider, plus an
error count keyed by error type.

Design
------
* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS`` (default 60 s).
* When running locally (``METRICS_ENABLED != "true"``), metrics are
  logged at DEBUG level but **not** pushed to CloudWatch.
* Each ``put_metric_data`` call sends up to 1 000 metric data points.

Usage
-----
>>> from receptionist.services.metrics import metrics
>>> metrics.record_success("deepseek", "generate", latency_ms=812.0, tokens=240, cost=0.000024)
>>> metrics.record_failure("openai", "generate", error_type="429")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "GymReceptionist"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        tokens: int = 0,
        cost: float = 0.0,
    ) -> None:
        """Record a successful provider call."""
        now = datetime.now(UTC)
        provider = [{"Name": "Provider", "Value": service}]

        self._append(self._point(
            "Provider/RequestCount", provider + [{"Name": "Status", "Value": "success"}],
            now, 1, "Count",
        ))
        self._append(self._point(
            "Provider/Latency", provider + [{"Name": "Operation", "Value": operation}],
            now, latency_ms, "Milliseconds",
        ))
        if tokens:
            self._append(self._point("Provider/Tokens", provider, now, tokens, "Count"))
            self._append(self._point("Provider/EstimatedCostUSD", provider, now, cost, "None"))
        logger.debug(
            "Metric: %s %s success latency=%.1fms tokens=%d",
            service, operation, latency_ms, tokens,
        )

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed provider call."""
        now = datetime.now(UTC)
        provider = [{"Name": "Provider", "Value": service}]

        self._append(self._point(
            "Provider/RequestCount", provider + [{"Name": "Status", "Value": "failure"}],
            now, 1, "Count",
        ))
        self._append(self._point(
            "Provider/ErrorCount", provider + [{"Name": "ErrorType", "Value": error_type}],
            now, 1, "Count",
        ))
        if latency_ms > 0:
            self._append(self._point(
                "Provider/Latency", provider + [{"Name": "Operation", "Value": operation}],
                now, latency_ms, "Milliseconds",
            ))
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    @staticmethod
    def _point(
        name: str, dimensions: list[dict[str, str]], ts: datetime, value: float, unit: str,
    ) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": ts,
            "Value": value,
            "Unit": unit,
        }

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
