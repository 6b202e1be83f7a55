"""
Diagnostics router.

Endpoints:
  GET /whoami        — credential presence and runtime facts; records a ping
  GET /health/store  — round-trips a key through the coordination store
  GET|POST /echo     — reflects method, headers and body; only when
                       DEBUG_ECHO_ENABLED
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from emlbot.context import AppContext, get_context
from emlbot.errors import StoreUnavailableError
from emlbot.services.diagnostics import build_echo, build_whoami

logger = logging.getLogger(__name__)

router = APIRouter()

_HEALTH_KEY = "health:probe"


@router.get("/whoami")
async def whoami(ctx: AppContext = Depends(get_context)):
    return await run_in_threadpool(build_whoami, ctx)


def _probe_store(ctx: AppContext) -> None:
    stamp = str(int(time.time() * 1000))
    ctx.coordination_store.set(_HEALTH_KEY, stamp)
    if ctx.coordination_store.get(_HEALTH_KEY) != stamp:
        raise StoreUnavailableError("Health probe read back a different value")


@router.get("/health/store")
async def health_store(ctx: AppContext = Depends(get_context)):
    """
    Test the key-value store.

    Writes a probe value and reads it back. Returns 503 on failure.
    """
    try:
        await run_in_threadpool(_probe_store, ctx)
    except StoreUnavailableError as e:
        logger.error(f"Store health check failed: {e}")
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    return {"status": "ok", "backend": ctx.settings.store_backend}


@router.api_route("/echo", methods=["GET", "POST"])
async def echo(request: Request, ctx: AppContext = Depends(get_context)):
    if not ctx.settings.debug_echo_enabled:
        raise HTTPException(status_code=404, detail="Not Found")

    body = await request.body()
    return build_echo(request.method, request.url.path, dict(request.headers), body)
