"""Prometheus metrics for RPC, explorer and node activity"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST, start_http_server

# RPC Metrics
rpc_request_latency = Histogram(
    'rpc_request_latency_seconds',
    'JSON-RPC request latency in seconds',
    ['network', 'method'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

rpc_errors = Counter(
    'rpc_errors_total',
    'Total number of JSON-RPC errors',
    ['network', 'error_type']
)

# Explorer Metrics
explorer_requests = Counter(
    'explorer_requests_total',
    'Total number of explorer API requests',
    ['network', 'module', 'action', 'status']
)

# Node Metrics
node_items_processed = Counter(
    'node_items_processed_total',
    'Total number of items processed by the action node',
    ['resource', 'operation', 'status']
)

# Trigger Metrics
trigger_blocks_behind = Gauge(
    'trigger_blocks_behind',
    'Number of blocks between the poll cursor and the chain head',
    ['network', 'event']
)

trigger_events_emitted = Counter(
    'trigger_events_emitted_total',
    'Total number of items emitted by the trigger node',
    ['network', 'event']
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.
    
    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest()


def get_content_type() -> str:
    """
    Get the content type for Prometheus metrics.
    
    Returns:
        Content type string
    """
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.
    
    Args:
        port: Port to listen on (default 9090)
    """
    start_http_server(port)
