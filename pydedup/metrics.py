"""In-process counters for guard outcomes."""

import time
import threading
from typing import Dict


class GuardMetrics:
    """Track and report guard decisions; safe to share across threads."""
    
    COUNTERS = (
        "bypassed",
        "passed",
        "missing",
        "overlap",
        "admitted",
        "released",
        "release_failures",
        "backend_errors",
    )
    
    def __init__(self):
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.counts: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self.inflight = 0
    
    def record(self, name: str):
        with self.lock:
            self.counts[name] += 1
    
    def record_admitted(self):
        with self.lock:
            self.counts["admitted"] += 1
            self.inflight += 1
    
    def record_finished(self, released: bool):
        """Record the end of an admitted request, successful release or not."""
        with self.lock:
            self.counts["released" if released else "release_failures"] += 1
            self.inflight -= 1
    
    def get_stats(self) -> Dict:
        with self.lock:
            return {
                "uptime_seconds": round(time.time() - self.start_time, 2),
                "inflight": self.inflight,
                **self.counts
            }
