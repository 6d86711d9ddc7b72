"""Prometheus metrics export for pydedup."""

from prometheus_client import Counter, Gauge, start_http_server


# Module-level metrics (registered once per process)
_metrics_initialized = False
_requests = None
_backend_errors = None
_inflight = None


def _init_metrics():
    global _metrics_initialized, _requests, _backend_errors, _inflight
    
    if _metrics_initialized:
        return
    
    _requests = Counter('pydedup_requests_total', 'Requests seen by the guard', ['outcome'])
    _backend_errors = Counter('pydedup_backend_errors_total', 'Token store failures', ['operation'])
    _inflight = Gauge('pydedup_inflight_requests', 'Claimed request ids not yet released')
    
    _metrics_initialized = True


class PrometheusMetrics:
    """Prometheus metrics collector."""
    
    _server_started = False
    
    def __init__(self, port: int = 9090):
        self.port = port
        _init_metrics()
        
        self.requests = _requests
        self.backend_errors = _backend_errors
        self.inflight = _inflight
    
    def start(self):
        """Start Prometheus metrics server."""
        if not PrometheusMetrics._server_started:
            start_http_server(self.port)
            PrometheusMetrics._server_started = True
    
    def record_outcome(self, outcome: str):
        self.requests.labels(outcome=outcome).inc()
        if outcome == "claimed":
            self.inflight.inc()
    
    def record_release(self):
        self.inflight.dec()
    
    def record_backend_error(self, operation: str):
        self.backend_errors.labels(operation=operation).inc()
