"""FastAPI integration: runs the request id guard as HTTP middleware."""

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request as StarletteRequest
from starlette.types import ASGIApp, Receive, Scope, Send
from typing import Any, Dict, Optional

from .errors import BackendError
from .guard import Outcome, RequestIdGuard, SAFE_METHODS


STORE_UNAVAILABLE = "request id store unavailable"

guard_instance: Optional[RequestIdGuard] = None


def set_guard(guard: Optional[RequestIdGuard]):
    """Set the guard used by the module-level app."""
    global guard_instance
    guard_instance = guard


class StarletteRequestAdapter:
    """Exposes a Starlette request through the guard's Request protocol."""

    def __init__(self, request: StarletteRequest):
        self._request = request
        self.method = request.method

    def header(self, name: str) -> Optional[str]:
        return self._request.headers.get(name)

    def remote_ip(self) -> Optional[str]:
        client = self._request.client
        return client.host if client else None


class JSONResponseWriter:
    """Collects a rejection written by the guard and renders it as JSON."""

    def __init__(self):
        self.status_code = 200
        self.body: Dict[str, Any] = {}

    def report_forbidden(self):
        self.status_code = 403

    def report_bad_request(self):
        self.status_code = 400

    def send(self, key: str, value: Any):
        self.body[key] = value

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body)


class RequestIdMiddleware:
    """ASGI middleware claiming the request id for the whole response.

    The id is released only after the downstream app has returned, which
    covers streamed bodies and background tasks. Uses the guard passed in, or
    the one installed with ``set_guard``. Store calls may block on the
    network, so they run in the thread pool.
    """

    def __init__(self, app: ASGIApp, guard: Optional[RequestIdGuard] = None):
        self.app = app
        self.guard = guard

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = StarletteRequest(scope)
        guard = self.guard or guard_instance
        if guard is None:
            if request.method.upper() in SAFE_METHODS:
                await self.app(scope, receive, send)
            else:
                await JSONResponse(status_code=503, content={"error": "Guard not available"})(scope, receive, send)
            return

        try:
            admission = await run_in_threadpool(guard.admit, StarletteRequestAdapter(request))
        except BackendError:
            await JSONResponse(status_code=503, content={"error": STORE_UNAVAILABLE})(scope, receive, send)
            return

        if not admission.proceed:
            writer = JSONResponseWriter()
            guard.reject(admission, writer)
            await writer.to_response()(scope, receive, send)
            return

        if admission.outcome is not Outcome.CLAIMED:
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        finally:
            await run_in_threadpool(guard.release, admission.key)


app = FastAPI(title="pydedup API", version="1.0.0")
app.add_middleware(RequestIdMiddleware)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "guard_configured": guard_instance is not None}


@app.get("/api/metrics")
async def get_metrics():
    """Get guard decision counters."""
    if not guard_instance:
        raise HTTPException(status_code=503, detail="Guard not available")

    return {
        "store": type(guard_instance.store).__name__,
        "header_name": guard_instance.header_name,
        **guard_instance.metrics.get_stats()
    }
