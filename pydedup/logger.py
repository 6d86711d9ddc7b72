"""Structured logging for pydedup."""

import json
import time


class Logger:
    """JSON-structured logger writing one entry per line."""
    
    def __init__(self, component: str = "guard"):
        self.component = component
    
    def _log(self, level: str, message: str, **kwargs):
        log_entry = {
            "timestamp": time.time(),
            "level": level,
            "component": self.component,
            "message": message,
            **kwargs
        }
        print(json.dumps(log_entry, default=str), flush=True)
    
    def child(self, component: str) -> "Logger":
        """Logger for a sub-component, e.g. a store owned by the guard."""
        return Logger(f"{self.component}.{component}")
    
    def info(self, message: str, **kwargs):
        self._log("INFO", message, **kwargs)
    
    def warn(self, message: str, **kwargs):
        self._log("WARN", message, **kwargs)
    
    def error(self, message: str, **kwargs):
        self._log("ERROR", message, **kwargs)
    
    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, **kwargs)
