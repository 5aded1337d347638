from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from clawtar import __version__
from clawtar.api.dependencies import get_container
from clawtar.models import utcnow
from clawtar.services.container import ServiceContainer

router = APIRouter(tags=["General"])

LOOPBACK_HOSTS = {"127.0.0.1", "::1", "localhost"}


@router.get("/", tags=["Health"])
async def root(container: ServiceContainer = Depends(get_container)):
    """Root endpoint with basic info"""
    return {
        "name": "Clawtar",
        "version": __version__,
        "status": "operational",
        "endpoints": {
            "submit_task": "/v1/tasks",
            "task_status": "/v1/tasks/{task_id}",
            "payment_callback": "/v1/payments/callback",
            "payment_refresh": "/v1/tasks/{task_id}/payment/refresh",
            "ask": "/v1/clawtar/ask",
            "recent": "/v1/clawtar/recent",
            "stats": "/v1/clawtar/stats",
        },
        "pricing": {
            "task_sats": container.config.default_job_price_sats,
            "fortune_sats": container.config.fortune_price_sats,
        },
    }


@router.get("/healthz", tags=["Health"])
async def health_check():
    return {"ok": True, "ts": utcnow().isoformat()}


def _metrics_allowed(request: Request, token: str) -> bool:
    client_host = request.client.host if request.client else ""
    if client_host in LOOPBACK_HOSTS:
        return True
    if not token:
        return False
    supplied = request.headers.get("x-metrics-token") or request.query_params.get("token")
    return supplied == token


@router.get("/metrics", response_class=PlainTextResponse, tags=["Health"])
async def metrics(request: Request, container: ServiceContainer = Depends(get_container)):
    """Counters in ``name value`` lines; loopback or token only"""
    if not _metrics_allowed(request, container.config.metrics_token):
        return PlainTextResponse("forbidden\n", status_code=403)

    counters = container.store.state.metrics.model_dump()
    return "".join(f"{name} {value}\n" for name, value in counters.items())
