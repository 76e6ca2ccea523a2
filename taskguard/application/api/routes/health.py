"""
Health Check Routes
===================

- ``GET /health``           liveness: the process answers, no dependency calls
- ``GET /health/ready``     readiness: the shared store answers a ping
- ``GET /health/breakers``  circuit breaker snapshot for operators

Readiness returns 503 when the store is down so a load balancer stops
routing here, while liveness keeps returning 200 so the orchestrator does
not restart a process that would only come back to the same outage.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskguard import __version__
from taskguard.application.api.dependencies import BreakersDep, StoreDep
from taskguard.core.exceptions import CircuitBreakerError, StoreUnavailableError

router = APIRouter(prefix="/health", tags=["Health"])

STORE_BREAKER_NAME = "redis-health"


class HealthResponse(BaseModel):
    status: str  # "healthy", "unhealthy"
    timestamp: str
    version: str = __version__
    components: dict | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", timestamp=_now())


@router.get("/ready", response_model=HealthResponse, responses={503: {"model": HealthResponse}})
async def readiness_check(store: StoreDep, breakers: BreakersDep):
    """
    Store ping through its own breaker, so a flapping Redis does not get
    hammered by readiness checks.
    """

    async def ping_store() -> bool:
        if not await store.ping():
            raise StoreUnavailableError("Store ping failed")
        return True

    try:
        await breakers.execute(STORE_BREAKER_NAME, ping_store)
    except (StoreUnavailableError, CircuitBreakerError) as e:
        body = HealthResponse(
            status="unhealthy",
            timestamp=_now(),
            components={"store": {"status": "unhealthy", "error": type(e).__name__}},
        )
        return JSONResponse(status_code=503, content=body.model_dump())

    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        components={"store": {"status": "healthy"}},
    )


@router.get("/breakers")
async def breaker_status(breakers: BreakersDep):
    return {"timestamp": _now(), "breakers": breakers.all_stats()}
