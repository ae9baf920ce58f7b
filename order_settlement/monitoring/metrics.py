"""
Prometheus metrics for order settlement monitoring.

Tracks:
- Order creation outcomes by currency / failure reason
- Stock reservations and releases
- Low-stock alerts per product
- Comgate API calls and errors
- Webhook processing outcomes
"""
from prometheus_client import Counter, Gauge, Histogram

# Order metrics
orders_created_total = Counter(
    "orders_created_total",
    "Total number of orders created",
    ["currency"],
)

order_creation_failures_total = Counter(
    "order_creation_failures_total",
    "Total number of rejected order creations",
    ["reason"],  # validation_error, product_unavailable, insufficient_stock
)

order_total_cents = Histogram(
    "order_total_cents",
    "Order totals in minor currency units",
    buckets=(1000, 5000, 10000, 50000, 100000, 500000, 1000000, 5000000),
)

order_processing_duration_seconds = Histogram(
    "order_processing_duration_seconds",
    "Order creation duration in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

orders_cancelled_total = Counter(
    "orders_cancelled_total",
    "Total number of cancelled orders",
)

# Inventory metrics
stock_operations_total = Counter(
    "stock_operations_total",
    "Total stock ledger operations",
    ["operation", "status"],  # reserve/release/adjust, success/insufficient
)

low_stock_alerts_total = Counter(
    "low_stock_alerts_total",
    "Times a product crossed its low-stock threshold",
    ["product_id"],
)

product_stock_level = Gauge(
    "product_stock_level",
    "Last observed stock level per product",
    ["product_id"],
)

# Gateway metrics
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total Comgate API requests",
    ["operation", "status"],  # operation: create_payment, verify_payment, cancel_payment
)

gateway_errors_total = Counter(
    "gateway_errors_total",
    "Total Comgate API errors",
    ["error_type"],  # configuration, transient, rejected
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Comgate API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook notifications processed",
    ["gateway_status", "outcome"],  # outcome: applied, noop, rejected, error code
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


# HTTP metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests served",
    ["method", "route", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "route"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_order_created(currency: str, total_cents: int, duration_seconds: float) -> None:
        """Record a successfully created order."""
        orders_created_total.labels(currency=currency).inc()
        order_total_cents.observe(total_cents)
        order_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_order_rejected(reason: str) -> None:
        """Record a rejected order creation."""
        order_creation_failures_total.labels(reason=reason).inc()

    @staticmethod
    def record_order_cancelled() -> None:
        orders_cancelled_total.inc()

    @staticmethod
    def record_stock_operation(operation: str, status: str) -> None:
        """Record a ledger operation."""
        stock_operations_total.labels(operation=operation, status=status).inc()

    @staticmethod
    def set_stock_level(product_id: int, quantity: int) -> None:
        product_stock_level.labels(product_id=str(product_id)).set(quantity)

    @staticmethod
    def record_low_stock(product_id: int) -> None:
        low_stock_alerts_total.labels(product_id=str(product_id)).inc()

    @staticmethod
    def record_gateway_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record Comgate API call."""
        gateway_requests_total.labels(operation=operation, status=status).inc()
        gateway_request_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_gateway_error(error_type: str) -> None:
        """Record Comgate API error."""
        gateway_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def record_webhook_event(gateway_status: str, outcome: str, duration_seconds: float) -> None:
        """Record webhook notification processing."""
        webhook_events_processed_total.labels(
            gateway_status=gateway_status, outcome=outcome
        ).inc()
        webhook_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_http_request(
        method: str, route: str, status_code: int, duration_seconds: float
    ) -> None:
        """Record a served request; route is the path template, not the raw path."""
        http_requests_total.labels(
            method=method, route=route, status_code=str(status_code)
        ).inc()
        http_request_duration_seconds.labels(method=method, route=route).observe(
            duration_seconds
        )


# Export singleton instance
metrics = MetricsCollector()
