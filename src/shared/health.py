from time import perf_counter

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter(tags=["Health"])


@router.get("/_health/live")
async def health_live():
    return {"status": "ok"}


@router.get("/_health/store", status_code=status.HTTP_200_OK)
async def health_store(request: Request):
    """Counter store round trip (Redis PING, or the in-process store)."""
    store = request.app.state.container.store
    t0 = perf_counter()
    try:
        pong = await store.ping()
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "checks": {"store": "ping failed"}, "error": type(e).__name__},
        )
    dt_ms = int((perf_counter() - t0) * 1000)
    if not pong:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "checks": {"store": "degraded"}},
        )
    return {"ok": True, "checks": {"store_ping_ms": dt_ms}}
