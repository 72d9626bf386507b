"""HTTP client for the two CouchDB databases.

CouchStore wraps httpx.AsyncClient with circuit breaker protection. Every
public call returns a value: network trouble, 4xx/5xx replies and unreadable
bodies come back as TransportFailure instead of raising.
"""

import time
from typing import Any, Iterable, Optional, Union

import httpx
import structlog

from forwarder.config import Settings
from forwarder.schemas import (
    CurrentOp,
    CurrentStateRecord,
    DocResult,
    EventKey,
    HistoryRecord,
    MalformedEventError,
    TransportFailure,
)

log = structlog.get_logger(__name__)


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open and requests are blocked."""
    pass


class StoreUnavailableError(Exception):
    """Raised when a store call fails (timeout, connection error, 5xx HTTP error)."""
    pass


class CircuitBreaker:
    """Circuit breaker with three states: closed, open, half-open.

    - closed: requests flow normally, failures are counted
    - open: requests are immediately rejected with CircuitOpenError
    - half-open: one trial request is allowed; success -> closed, failure -> open
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.state = "closed"

    async def call(self, coro_factory):
        """Execute coroutine factory with circuit breaker protection.

        Args:
            coro_factory: A zero-argument callable that returns a coroutine.
        """
        if self.state == "open":
            if time.monotonic() - self.last_failure_time > self.recovery_timeout:
                self.state = "half-open"
            else:
                raise CircuitOpenError("CouchDB is temporarily unavailable")

        try:
            resp = await coro_factory()
        except (httpx.HTTPError, ConnectionError, OSError) as exc:
            self._on_failure()
            raise StoreUnavailableError(str(exc) or exc.__class__.__name__) from exc

        # 5xx are server errors; 4xx are our fault and do NOT trip the circuit
        if resp.status_code >= 500:
            self._on_failure()
            raise StoreUnavailableError(f"CouchDB returned {resp.status_code}")
        self._on_success()
        return resp

    def _on_success(self):
        self.failure_count = 0
        self.state = "closed"

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.failure_threshold:
            self.state = "open"


class CouchStore:
    """Current-state and history databases behind one HTTP client."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.current_db = settings.current_db
        self.history_db = settings.history_db
        auth = None
        if settings.couchdb_user:
            auth = httpx.BasicAuth(settings.couchdb_user, settings.couchdb_password)
        self.client = client or httpx.AsyncClient(
            base_url=settings.couchdb_url,
            auth=auth,
            timeout=httpx.Timeout(settings.store_timeout, connect=2.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        self.breaker = CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=settings.circuit_recovery_timeout,
        )

    async def _request(
        self, operation: str, method: str, path: str, **kwargs
    ) -> Union[Any, TransportFailure]:
        """Send one request and return the decoded JSON body or a TransportFailure."""
        try:
            resp = await self.breaker.call(lambda: self.client.request(method, path, **kwargs))
        except (CircuitOpenError, StoreUnavailableError) as exc:
            return TransportFailure(operation=operation, error=str(exc))

        if resp.status_code >= 400:
            return TransportFailure(
                operation=operation,
                error=f"CouchDB returned {resp.status_code}: {resp.text[:200]}",
            )
        try:
            return resp.json()
        except ValueError as exc:
            return TransportFailure(operation=operation, error=f"unreadable response: {exc}")

    async def fetch_prior(
        self, keys: Iterable[EventKey]
    ) -> Union[dict[EventKey, CurrentStateRecord], TransportFailure]:
        """Look up the current-state record of every key in one _all_docs call.

        Keys with no live document (never written, or tombstoned) are absent
        from the returned mapping.
        """
        by_id = {key.doc_id: key for key in keys}
        if not by_id:
            return {}

        body = await self._request(
            "fetch_prior",
            "POST",
            f"/{self.current_db}/_all_docs",
            params={"include_docs": "true"},
            json={"keys": list(by_id)},
        )
        if isinstance(body, TransportFailure):
            return body

        prior: dict[EventKey, CurrentStateRecord] = {}
        try:
            rows = body["rows"]
        except (KeyError, TypeError):
            return TransportFailure(operation="fetch_prior", error="response has no rows")

        for row in rows:
            doc = row.get("doc")
            if row.get("error") or not doc:
                continue
            key = by_id.get(row.get("key"))
            if key is None:
                continue
            try:
                prior[key] = CurrentStateRecord.from_document(doc)
            except (MalformedEventError, KeyError) as exc:
                # Treated as absent; the insert that follows conflicts and is requeued
                log.error("prior_record_malformed", doc_id=key.doc_id, error=str(exc))
        return prior

    async def _bulk_docs(
        self, operation: str, db: str, docs: list[dict[str, Any]]
    ) -> Union[list[DocResult], TransportFailure]:
        body = await self._request(operation, "POST", f"/{db}/_bulk_docs", json={"docs": docs})
        if isinstance(body, TransportFailure):
            return body
        if not isinstance(body, list) or len(body) != len(docs):
            return TransportFailure(
                operation=operation,
                error=f"expected {len(docs)} results, got {body!r:.200}",
            )
        return [DocResult.from_row(row) for row in body]

    async def bulk_apply(self, ops: list[CurrentOp]) -> Union[list[DocResult], TransportFailure]:
        """Insert, update or delete current-state records, one result per op."""
        return await self._bulk_docs(
            "bulk_apply", self.current_db, [op.to_document() for op in ops]
        )

    async def bulk_append(
        self, records: list[HistoryRecord]
    ) -> Union[list[DocResult], TransportFailure]:
        """Append records to the history log, one result per record."""
        return await self._bulk_docs(
            "bulk_append", self.history_db, [record.to_document() for record in records]
        )

    async def list_current(
        self, limit: Optional[int] = None
    ) -> Union[list[dict[str, Any]], TransportFailure]:
        """Return current-state event documents, all of them unless `limit` is given."""
        params: dict[str, Any] = {"include_docs": "true"}
        if limit is not None:
            params["limit"] = limit
        body = await self._request(
            "list_current", "GET", f"/{self.current_db}/_all_docs", params=params
        )
        if isinstance(body, TransportFailure):
            return body
        rows = body.get("rows", []) if isinstance(body, dict) else []
        return [
            row["doc"]["event"]
            for row in rows
            if isinstance(row.get("doc"), dict) and "event" in row["doc"]
        ]

    async def ping(self) -> bool:
        body = await self._request("ping", "GET", "/")
        return not isinstance(body, TransportFailure)

    async def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        await self.client.aclose()
