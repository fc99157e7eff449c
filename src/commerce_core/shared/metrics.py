"""Prometheus metrics for orders, inventory and catalog generation."""
from prometheus_client import REGISTRY, Counter, Gauge, Histogram


def _get_or_create_metric(metric_class, name: str, doc: str, labelnames=None, **kwargs):
    """Get existing metric or create new one to avoid duplication errors in tests."""
    for collector in list(REGISTRY._collector_to_names.keys()):
        if hasattr(collector, "_name") and collector._name == name:
            return collector
    try:
        if labelnames is not None:
            kwargs["labelnames"] = labelnames
        return metric_class(name, doc, registry=REGISTRY, **kwargs)
    except ValueError as e:
        if "Duplicated timeseries" in str(e):
            for collector in list(REGISTRY._collector_to_names.keys()):
                if hasattr(collector, "_name") and collector._name == name:
                    return collector
        raise


# Inventory metrics
stock_movements_total = _get_or_create_metric(
    Counter,
    "commerce_stock_movements_total",
    "Total number of stock movements recorded in the ledger",
    ["reason"],
)

stock_rejections_total = _get_or_create_metric(
    Counter,
    "commerce_stock_rejections_total",
    "Total number of stock movements rejected",
    ["error_type"],
)

# Order metrics
order_item_operations_total = _get_or_create_metric(
    Counter,
    "commerce_order_item_operations_total",
    "Total number of order item operations applied",
    ["action"],
)

order_status_changes_total = _get_or_create_metric(
    Counter,
    "commerce_order_status_changes_total",
    "Total number of order status transitions",
    ["from_status", "to_status"],
)

refunds_total = _get_or_create_metric(
    Counter,
    "commerce_refunds_total",
    "Total number of refunds applied or cancelled",
    ["operation", "refund_type"],
)

# Catalog metrics
catalog_generations_total = _get_or_create_metric(
    Counter,
    "commerce_catalog_generations_total",
    "Total number of catalog generation jobs by outcome",
    ["outcome"],
)

catalog_generation_duration_seconds = _get_or_create_metric(
    Histogram,
    "commerce_catalog_generation_duration_seconds",
    "Time taken to generate a catalog artifact",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Progress room metrics
progress_rooms_active = _get_or_create_metric(
    Gauge, "commerce_progress_rooms_active", "Number of active progress rooms"
)

progress_room_members = _get_or_create_metric(
    Gauge,
    "commerce_progress_room_members",
    "Number of connections joined to progress rooms",
)

progress_room_join_rejections_total = _get_or_create_metric(
    Counter,
    "commerce_progress_room_join_rejections_total",
    "Total number of rejected room joins",
    ["reason"],
)

progress_emit_failures_total = _get_or_create_metric(
    Counter,
    "commerce_progress_emit_failures_total",
    "Total number of progress events that failed to send",
)
