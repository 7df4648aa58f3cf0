from time import perf_counter

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["Health"])


@router.get("/_health/redis")
async def health_redis(request: Request):
    redis = request.app.state.container.redis
    if not redis.enabled:
        return {"service": "redis", "status": "disabled"}
    # the client absorbs failures, so a failed ping means degraded rather than down
    return {"service": "redis", "status": "ok" if await redis.ping() else "degraded"}


@router.get("/_health/db", status_code=status.HTTP_200_OK)
async def health_db(request: Request):
    session_factory = request.app.state.container.db.session_factory
    t0 = perf_counter()
    try:
        async with session_factory() as s:
            await s.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "ok": False,
                "checks": {"db": "SELECT 1 failed"},
                "error": type(e).__name__,
            },
        )
    dt_ms = int((perf_counter() - t0) * 1000)
    return {"ok": True, "checks": {"db_select_1_ms": dt_ms}}
