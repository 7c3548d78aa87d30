"""Alert message text builders."""

from __future__ import annotations

from datetime import datetime

from .models import Product
from .timeutils import ensure_utc, utcnow

DEFERRED_PREFIX = "[DEFERRED] "


def _timestamp(moment: datetime | None) -> str:
    return ensure_utc(moment or utcnow()).isoformat().replace("+00:00", "Z")


def build_low_stock_message(product: Product, *, checked_at: datetime | None = None) -> str:
    return "\n".join(
        [
            "⚠️ Low stock warning",
            f"Product: {product.name} ({product.code})",
            f"Remaining: {product.remain:,} {product.unit}",
            f"Safety stock: {product.safety_stock:,} {product.unit}",
            f"Checked at: {_timestamp(checked_at)}",
        ]
    )


def build_test_alert_message(requested_by: str, *, requested_at: datetime | None = None) -> str:
    return f"[TEST] Inventory alert requested by {requested_by} at {_timestamp(requested_at)}"


def build_custom_alert_message(requested_by: str, message: str) -> str:
    return f"[Admin {requested_by}] {message.strip()}"


def mark_deferred(message: str) -> str:
    if message.startswith(DEFERRED_PREFIX):
        return message
    return f"{DEFERRED_PREFIX}{message}"


def strip_deferred(message: str) -> str:
    if message.startswith(DEFERRED_PREFIX):
        return message[len(DEFERRED_PREFIX):]
    return message
