import hashlib
import logging
import os
import time
from typing import Any, Dict

from fastapi import HTTPException, Request, Response

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"


def _client_key(req: Request) -> str:
    # Priorité: session checkout (hashée) puis IP
    session_id = req.headers.get(SESSION_HEADER)
    path = req.url.path
    if session_id:
        h = hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:16]
        return f"session:{h}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"


def optional_rate_limit(times: int, seconds: int):
    async def _dep(request: Request, response: Response):
        # Fallback mémoire (DEV / redis indisponible)
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = _client_key(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Too Many Requests")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        from fastapi_limiter import FastAPILimiter
        from fastapi_limiter.depends import RateLimiter

        if getattr(FastAPILimiter, "redis", None) is None:
            return

        async def _identifier(req: Request) -> str:
            return _client_key(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception as e:
            # redis en erreur: pas de 429, LOCAL_RATE_LIMIT_FALLBACK=1 pour limiter en mémoire
            logger.warning("rate limiter unavailable: %s", e)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    from fastapi_limiter import FastAPILimiter

    ready = getattr(FastAPILimiter, "redis", None) is not None
    return {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": ready,
        "backend": "redis" if ready else None,
        "memory_fallback": os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1",
    }
