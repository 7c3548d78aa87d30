import logging
from time import perf_counter
from typing import Any

from fastapi import APIRouter, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..timeutils import utcnow

router = APIRouter(prefix="/health", tags=["health"])

_LOGGER = logging.getLogger(__name__)


async def _check_database(request: Request) -> dict[str, Any]:
    session_factory = request.app.state.session_factory
    started = perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        _LOGGER.warning("Database health check failed: %s", exc)
        return {"status": "down", "message": str(exc).splitlines()[0]}
    latency_ms = round((perf_counter() - started) * 1000, 2)
    return {"status": "up", "latencyMs": latency_ms}


@router.get("", status_code=status.HTTP_200_OK)
async def healthcheck(request: Request) -> dict[str, Any]:
    """Report database reachability and the retry worker state.

    Always answers 200; ``status`` is ``degraded`` when the database check fails.
    """

    database = await _check_database(request)
    worker = getattr(request.app.state, "alert_worker", None)
    return {
        "status": "ok" if database["status"] == "up" else "degraded",
        "timestamp": utcnow().isoformat(),
        "alertWorker": worker.state if worker is not None else "disabled",
        "services": {"database": database},
    }
