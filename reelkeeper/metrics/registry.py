"""Prometheus metrics registry and metric objects used across the app."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, REGISTRY


UPDATES_HANDLED = Counter(
    "reelkeeper_updates_total",
    "Inbound chat updates handled, by classification",
    ["kind"],
)

RECORDS_CREATED = Counter(
    "reelkeeper_records_created_total",
    "Catalog records created through the chat interface",
    ["kind"],
)

RECORDS_DELETED = Counter(
    "reelkeeper_records_deleted_total",
    "Catalog records deleted through the chat interface",
    ["kind"],
)

VALIDATION_REJECTIONS = Counter(
    "reelkeeper_validation_rejections_total",
    "Inputs rejected with a re-prompt",
    ["state"],
)

COMMIT_FAILURES = Counter(
    "reelkeeper_commit_failures_total",
    "Store commits that failed and cleared the session",
    ["kind"],
)

UPDATE_SECONDS = Histogram(
    "reelkeeper_update_seconds", "Handling time per inbound update"
)

__all__ = [
    "REGISTRY",
    "UPDATES_HANDLED",
    "RECORDS_CREATED",
    "RECORDS_DELETED",
    "VALIDATION_REJECTIONS",
    "COMMIT_FAILURES",
    "UPDATE_SECONDS",
]
