"""Prometheus metrics for the remote sync engine."""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

REMOTE_ERRORS = Counter(
    "projectsync_remote_errors_total",
    "Remote store failures by classified kind",
    ["kind"],
)

REMOTE_OPERATION_SECONDS = Histogram(
    "projectsync_remote_operation_seconds",
    "Duration of logical remote operations",
    ["operation"],
)

PROVISION_TOTAL = Counter(
    "projectsync_provision_total",
    "Project folder provisioning attempts by outcome",
    ["outcome"],
)

RECONCILE_PROJECTS_TOTAL = Counter(
    "projectsync_reconcile_projects_total",
    "Projects processed by reconciliation runs by status",
    ["status"],
)

SCAN_ITEMS_TOTAL = Counter(
    "projectsync_scan_items_total",
    "Items emitted by recursive scans",
)

__all__ = [
    "CONTENT_TYPE_LATEST",
    "REGISTRY",
    "generate_latest",
    "REMOTE_ERRORS",
    "REMOTE_OPERATION_SECONDS",
    "PROVISION_TOTAL",
    "RECONCILE_PROJECTS_TOTAL",
    "SCAN_ITEMS_TOTAL",
]
