"""
Metrics collection and reporting for dirserve
"""

import time
import threading
from typing import Dict, Any
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class Metrics:
    """Application metrics container"""

    # Request metrics
    total_requests: int = 0
    active_requests: int = 0
    requests_by_method: Dict[str, int] = field(default_factory=dict)
    requests_by_status: Dict[int, int] = field(default_factory=dict)

    # Transfer metrics
    files_served: int = 0
    directories_listed: int = 0
    total_download_bytes: int = 0

    # Error metrics
    total_errors: int = 0
    traversal_rejections: int = 0

    # Performance metrics
    avg_response_time: float = 0.0
    total_response_time: float = 0.0

    # Startup time
    startup_time: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary"""
        uptime = time.time() - self.startup_time

        return {
            "uptime_seconds": uptime,
            "requests": {
                "total": self.total_requests,
                "active": self.active_requests,
                "by_method": self.requests_by_method.copy(),
                "by_status": self.requests_by_status.copy(),
                "avg_response_time": self.avg_response_time,
            },
            "transfer": {
                "files_served": self.files_served,
                "directories_listed": self.directories_listed,
                "download_bytes": self.total_download_bytes,
            },
            "errors": {
                "total": self.total_errors,
                "traversal_rejections": self.traversal_rejections,
            },
        }


class MetricsManager:
    """Thread-safe metrics manager"""

    def __init__(self):
        self.metrics = Metrics()
        self._lock = threading.Lock()

    def increment_requests(self, method: str = "GET"):
        """Increment request counter"""
        with self._lock:
            self.metrics.total_requests += 1
            self.metrics.requests_by_method[method] = self.metrics.requests_by_method.get(method, 0) + 1

    def record_response(self, status_code: int, response_time: float):
        """Record response metrics"""
        with self._lock:
            self.metrics.requests_by_status[status_code] = self.metrics.requests_by_status.get(status_code, 0) + 1

            # Update average response time
            total_requests = self.metrics.total_requests
            if total_requests > 0:
                self.metrics.total_response_time += response_time
                self.metrics.avg_response_time = self.metrics.total_response_time / total_requests

    def record_file_served(self, bytes_count: int):
        """Count a file response and its declared size"""
        with self._lock:
            self.metrics.files_served += 1
            self.metrics.total_download_bytes += bytes_count

    def record_directory_listed(self):
        with self._lock:
            self.metrics.directories_listed += 1

    def increment_errors(self):
        """Increment error counter"""
        with self._lock:
            self.metrics.total_errors += 1

    def increment_traversal_rejections(self):
        with self._lock:
            self.metrics.traversal_rejections += 1

    @contextmanager
    def request_context(self, method: str = "GET"):
        """Context manager for request metrics"""
        self.increment_requests(method)
        with self._lock:
            self.metrics.active_requests += 1

        try:
            yield
        finally:
            with self._lock:
                self.metrics.active_requests = max(0, self.metrics.active_requests - 1)

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics snapshot"""
        with self._lock:
            return self.metrics.to_dict()

    def reset_metrics(self):
        """Reset all metrics (for testing)"""
        with self._lock:
            self.metrics = Metrics()
