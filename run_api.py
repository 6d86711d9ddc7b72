#!/usr/bin/env python3
"""Launcher script for the guarded REST API server."""

import uvicorn
from pydedup.api import app, set_guard
from pydedup.config import Config
from pydedup.guard import bootstrap


if __name__ == "__main__":
    config = Config()
    guard, env = bootstrap(config)
    set_guard(guard)

    if guard.prometheus:
        guard.prometheus.start()

    api_host = config.get("api", "host", "0.0.0.0")
    api_port = config.get("api", "port", 8080)
    guard.logger.info("Starting API server", host=api_host, port=api_port,
                      backend=config.get("guard", "backend"))

    try:
        uvicorn.run(app, host=api_host, port=api_port)
    finally:
        guard.destroy()
        env.close()
