import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Response

from forwarder.config import settings
from forwarder.couch import CouchStore
from forwarder.logging_config import configure_logging
from forwarder.metrics import metrics_endpoint
from forwarder.queue import RedisQueue
from forwarder.schemas import TransportFailure
from forwarder.services.search import SORT_FIELDS, search_events
from forwarder.worker.forwarder_worker import Forwarder


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure structured logging before anything else
    configure_logging(settings)

    app.state.queue = RedisQueue(settings)
    app.state.store = CouchStore(settings)
    app.state.forwarder = Forwarder(app.state.queue, app.state.store, settings)
    app.state.forwarder_task = asyncio.create_task(app.state.forwarder.run())
    try:
        yield
    finally:
        # Let the in-flight batch finish; collection waits at most max_wait_time
        await app.state.forwarder.shutdown(
            app.state.forwarder_task, timeout=settings.max_wait_time + settings.store_timeout * 3
        )
        await app.state.store.close()
        await app.state.queue.close()


app = FastAPI(
    title=settings.app_name, version="0.1.0", debug=settings.debug, lifespan=lifespan
)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check(response: Response):
    """Verify Redis, CouchDB and the forwarder worker.

    Returns 200 if all components are healthy, 503 if any component is unhealthy.
    """
    checks = {}
    overall_healthy = True

    if await app.state.queue.ping():
        checks["redis"] = {"status": "healthy"}
    else:
        checks["redis"] = {"status": "unhealthy", "error": "Redis unreachable"}
        overall_healthy = False

    if await app.state.store.ping():
        checks["couchdb"] = {"status": "healthy"}
    else:
        checks["couchdb"] = {"status": "unhealthy", "error": "CouchDB unreachable"}
        overall_healthy = False

    try:
        worker = app.state.forwarder_task
        if worker.done() or worker.cancelled():
            checks["forwarder_worker"] = {
                "status": "unhealthy",
                "error": "Worker task stopped",
            }
            overall_healthy = False
        else:
            checks["forwarder_worker"] = {"status": "healthy"}
    except AttributeError:
        checks["forwarder_worker"] = {
            "status": "unhealthy",
            "error": "Worker not initialized",
        }
        overall_healthy = False

    response.status_code = 200 if overall_healthy else 503
    return {"status": "healthy" if overall_healthy else "unhealthy", "checks": checks}


@app.get("/api/events")
async def list_events(
    query: str = Query(default="", max_length=500),
    sort: str = Query(default="client", pattern="^(" + "|".join(SORT_FIELDS) + ")$"),
    limit: int = Query(default=50, ge=1, le=1000),
):
    """Current-state events for the dashboard's event list.

    Payload: {"count": 3, "rows": [{"doc": {"event": {...}}}, ...],
              "counts": {"check": {"ping": 2, ...}, "client": {"web-1": 1, ...}},
              "ranges": {"status": {"OK": 0, "Warning": 1, "Critical": 2, "Unknown": 0}}}
    """
    events = await app.state.store.list_current()
    if isinstance(events, TransportFailure):
        raise HTTPException(status_code=503, detail=events.error)
    return search_events(events, query=query, sort=sort, limit=limit)
