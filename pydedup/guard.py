"""Request id guard: keeps the same mutating request from being processed twice.

Clients (or upstream services) send an id in a request header. The guard scopes
it to the client address, claims it in an ``IDStore`` for as long as the
downstream handler runs and releases it afterwards. A second request carrying
the same id from the same client while the first is still in flight is
rejected with 403. Safe methods are never checked.
"""

from enum import Enum
from typing import Callable, Optional, Protocol, Tuple

from .config import Config
from .environment import COMP_REDIS, Environment, RedisComponent
from .errors import BackendError, ConfigError, DedupError, RequestIdExists
from .logger import Logger
from .metrics import GuardMetrics
from .prometheus_metrics import PrometheusMetrics
from .redis_store import RedisIDStore
from .store import IDStore, MemoryIDStore


SAFE_METHODS = frozenset(("GET", "HEAD", "OPTIONS"))
DEFAULT_HEADER_NAME = "X-Request-Id"
DEFAULT_ERROR_OVERLAP = "request already accepted before, please wait"
UNKNOWN_CLIENT = "unknown"
# Never part of an IP address or host name, so the first one always ends the
# client part even when the token itself contains it.
KEY_DELIMITER = "|"


class Outcome(Enum):
    BYPASS = "bypass"
    PASS = "pass"
    MISSING = "missing"
    OVERLAP = "overlap"
    CLAIMED = "claimed"


# GuardMetrics counter for each outcome other than CLAIMED
COUNTER_NAMES = {
    Outcome.BYPASS: "bypassed",
    Outcome.PASS: "passed",
    Outcome.MISSING: "missing",
    Outcome.OVERLAP: "overlap",
}


class Admission:
    """Result of checking one request against the guard."""

    def __init__(self, outcome: Outcome, key: Optional[str] = None):
        self.outcome = outcome
        self.key = key

    @property
    def proceed(self) -> bool:
        return self.outcome in (Outcome.BYPASS, Outcome.PASS, Outcome.CLAIMED)

    def __repr__(self):
        return f"Admission({self.outcome.value}, key={self.key!r})"


class Request(Protocol):
    method: str

    def header(self, name: str) -> Optional[str]: ...

    def remote_ip(self) -> Optional[str]: ...


class Response(Protocol):
    def report_forbidden(self) -> None: ...

    def report_bad_request(self) -> None: ...

    def send(self, key: str, value: str) -> None: ...


Chain = Callable[[Request, Response], None]


def scope_key(client: Optional[str], token: str) -> str:
    """Bind a request id to the client that sent it."""
    return f"{client or UNKNOWN_CLIENT}{KEY_DELIMITER}{token}"


class RequestIdGuard:
    """Filter admitting each scoped request id at most once at a time."""

    def __init__(self, store: Optional[IDStore] = None, header_name: Optional[str] = None,
                 pass_on_missing: bool = False, error: Optional[str] = None,
                 error_overlap: Optional[str] = None, logger: Optional[Logger] = None,
                 prometheus: Optional[PrometheusMetrics] = None):
        self.store = store if store is not None else MemoryIDStore()
        self._header_name = header_name or DEFAULT_HEADER_NAME
        self._pass_on_missing = pass_on_missing
        self._error = error or f"header value {self._header_name} can't be empty"
        self._error_overlap = error_overlap or DEFAULT_ERROR_OVERLAP
        self.logger = logger or Logger("guard")
        self.metrics = GuardMetrics()
        self.prometheus = prometheus

    @property
    def header_name(self) -> str:
        return self._header_name

    @property
    def pass_on_missing(self) -> bool:
        return self._pass_on_missing

    @property
    def error(self) -> str:
        return self._error

    @property
    def error_overlap(self) -> str:
        return self._error_overlap

    @classmethod
    def from_config(cls, config: Config, logger: Optional[Logger] = None) -> "RequestIdGuard":
        """Build an uninitialized guard and its store from configuration."""
        valid, errors = config.validate()
        if not valid:
            raise ConfigError(errors)

        if config.get("guard", "backend") == "redis":
            store = RedisIDStore(key=config.get("redis", "key"))
        else:
            store = MemoryIDStore()

        prometheus = None
        if config.get("monitoring", "prometheus_enabled", False):
            prometheus = PrometheusMetrics(port=config.get("monitoring", "prometheus_port", 9090))

        return cls(
            store=store,
            header_name=config.get("guard", "header_name"),
            pass_on_missing=bool(config.get("guard", "pass_on_missing", False)),
            error=config.get("guard", "error"),
            error_overlap=config.get("guard", "error_overlap"),
            logger=logger,
            prometheus=prometheus
        )

    def init(self, env: Environment):
        self.store.init(env)
        self.logger.info("Request id guard initialized", header=self._header_name,
                         store=type(self.store).__name__, pass_on_missing=self._pass_on_missing)

    def destroy(self):
        self.store.destroy()
        self.logger.info("Request id guard destroyed")

    def _record(self, outcome: Outcome):
        if outcome is Outcome.CLAIMED:
            self.metrics.record_admitted()
        else:
            self.metrics.record(COUNTER_NAMES[outcome])
        if self.prometheus:
            self.prometheus.record_outcome(outcome.value)

    def admit(self, request: Request) -> Admission:
        """Decide whether request may proceed, claiming its id if it has one.

        Raises BackendError when the store fails; the request must not
        proceed in that case. A CLAIMED admission must be followed by
        ``release`` once the request is done.
        """
        if request.method.upper() in SAFE_METHODS:
            self._record(Outcome.BYPASS)
            return Admission(Outcome.BYPASS)

        token = request.header(self._header_name)
        if not token:
            outcome = Outcome.PASS if self._pass_on_missing else Outcome.MISSING
            self._record(outcome)
            return Admission(outcome)

        key = scope_key(request.remote_ip(), token)
        try:
            self.store.save(key)
        except RequestIdExists:
            self.logger.warn("Duplicate request rejected", key=key, method=request.method)
            self._record(Outcome.OVERLAP)
            return Admission(Outcome.OVERLAP, key)
        except BackendError as e:
            self.logger.error("Request id store failed, rejecting request", key=key, error=str(e))
            self.metrics.record("backend_errors")
            if self.prometheus:
                self.prometheus.record_backend_error("save")
            raise

        self._record(Outcome.CLAIMED)
        return Admission(Outcome.CLAIMED, key)

    def release(self, key: str) -> bool:
        """Release a claimed key. Store failures are logged, never raised."""
        if self.prometheus:
            self.prometheus.record_release()
        try:
            self.store.remove(key)
        except DedupError as e:
            self.logger.error("Failed to release request id", key=key, error=str(e))
            self.metrics.record_finished(False)
            if self.prometheus:
                self.prometheus.record_backend_error("remove")
            return False
        self.metrics.record_finished(True)
        return True

    def reject(self, admission: Admission, response: Response):
        """Write the rejection for a MISSING or OVERLAP admission."""
        if admission.outcome is Outcome.MISSING:
            response.report_bad_request()
            response.send("error", self._error)
        elif admission.outcome is Outcome.OVERLAP:
            response.report_forbidden()
            response.send("error", self._error_overlap)
        else:
            raise ValueError(f"nothing to reject for {admission!r}")

    def filter(self, request: Request, response: Response, chain: Chain):
        admission = self.admit(request)
        if not admission.proceed:
            self.reject(admission, response)
            return

        if admission.outcome is not Outcome.CLAIMED:
            chain(request, response)
            return

        try:
            chain(request, response)
        finally:
            self.release(admission.key)


def bootstrap(config: Optional[Config] = None,
              logger: Optional[Logger] = None) -> Tuple[RequestIdGuard, Environment]:
    """Create the environment, shared components and an initialized guard."""
    config = config or Config()
    guard = RequestIdGuard.from_config(config, logger=logger)
    env = Environment(config, logger=guard.logger)
    if config.get("guard", "backend") == "redis":
        env.register(COMP_REDIS, RedisComponent())
    guard.init(env)
    return guard, env
