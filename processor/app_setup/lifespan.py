"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Valide l'environnement (sauf SKIP_ENV_VALIDATION=1) et journalise la configuration (secrets masqués).
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Ferme les clients HTTP Briqpay et commercetools à l'arrêt.
Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback mémoire si l'init échoue
"""
import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from processor import config
from processor.infra.briqpay_client import close_briqpay_client
from processor.infra.commercetools_client import close_commercetools_client


async def _init_rate_limiter(app: FastAPI, logger: logging.Logger) -> None:
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            from fakeredis.aioredis import FakeRedis  # dépendance de test
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - Configuration invalide: EnvValidationError, l'application ne démarre pas.
    - Redis indisponible sans fallback: rate limiting désactivé proprement.
    """
    logger = logging.getLogger("uvicorn.error")
    if os.getenv("SKIP_ENV_VALIDATION") != "1":
        config.validate_environment()
    logger.info("Environment: %s", config.environment_status())

    await _init_rate_limiter(app, logger)
    try:
        yield
    finally:
        await close_briqpay_client()
        await close_commercetools_client()
        logger.info("HTTP clients closed")
