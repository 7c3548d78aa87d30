"""Prometheus metrics for the inventory service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

# Stock ledger ------------------------------------------------------------------------------
INVENTORY_STOCK_ADJUSTMENTS_TOTAL: Final = Counter(
    "inventory_stock_adjustments_total",
    "Ledger adjustments applied to product counters.",
    labelnames=("kind",),
)

INVENTORY_LOW_STOCK_TRANSITIONS_TOTAL: Final = Counter(
    "inventory_low_stock_transitions_total",
    "Products whose status crossed into low after an adjustment.",
)

# Alert dispatch ----------------------------------------------------------------------------
ALERT_DISPATCH_TOTAL: Final = Counter(
    "alert_dispatch_total",
    "Alert dispatch outcomes by policy decision.",
    labelnames=("outcome",),
)

ALERT_DELIVERIES_TOTAL: Final = Counter(
    "alert_deliveries_total",
    "Alert messages handed to a channel target successfully.",
    labelnames=("channel",),
)

ALERT_DELIVERY_FAILURES_TOTAL: Final = Counter(
    "alert_delivery_failures_total",
    "Alert messages a channel target failed to accept.",
    labelnames=("channel",),
)

ALERT_POST_COMMIT_FAILURES_TOTAL: Final = Counter(
    "alert_post_commit_failures_total",
    "Low-stock dispatches that raised after the business transaction committed.",
)

# Telegram adapter --------------------------------------------------------------------------
TELEGRAM_SEND_ATTEMPTS_TOTAL: Final = Counter(
    "telegram_send_attempts_total",
    "Individual Telegram sendMessage attempts by outcome.",
    labelnames=("outcome",),
)

TELEGRAM_SEND_LATENCY_SECONDS: Final = Histogram(
    "telegram_send_latency_seconds",
    "Wall time of a logical Telegram send including retries.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

# Retry worker ------------------------------------------------------------------------------
ALERT_RETRY_SCANS_TOTAL: Final = Counter(
    "alert_retry_scans_total",
    "Retry worker ticks by outcome.",
    labelnames=("outcome",),
)

ALERT_RETRY_ITEMS_TOTAL: Final = Counter(
    "alert_retry_items_total",
    "Deferred alerts processed by the retry worker by result.",
    labelnames=("result",),
)
