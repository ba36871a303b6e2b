"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS (motifs ALLOWED_ORIGINS avec joker) et TrustedHost.
- register_security_middleware: en-têtes de sécurité (HSTS si HSTS_ENABLED).
- register_audit_middleware: une ligne de log par requête.
Notes:
- L'ordre d'ajout compte: le dernier middleware ajouté s'exécute en premier.
"""
import logging
import time
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.types import ASGIApp

from processor import config
from processor.utils.origin import is_origin_allowed
from processor.utils.security import SESSION_HEADER


class PatternCORSMiddleware(CORSMiddleware):
    """CORSMiddleware dont la vérification d'origine passe par les motifs avec joker."""

    def __init__(self, app: ASGIApp, patterns: Iterable[str], **kwargs):
        super().__init__(app, allow_origins=[], **kwargs)
        self.patterns = list(patterns)

    def is_allowed_origin(self, origin: str) -> bool:
        return is_origin_allowed(origin, self.patterns)


def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        PatternCORSMiddleware,
        patterns=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.ALLOWED_HOSTS or ["*"])


def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        if "X-Frame-Options" not in response.headers:
            response.headers["X-Frame-Options"] = "DENY"
        if "X-Content-Type-Options" not in response.headers:
            response.headers["X-Content-Type-Options"] = "nosniff"
        if "Referrer-Policy" not in response.headers:
            response.headers["Referrer-Policy"] = "no-referrer"
        if config.HSTS_ENABLED and "Strict-Transport-Security" not in response.headers:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
        response.headers["Cache-Control"] = "no-store"
        return response


def register_audit_middleware(app: FastAPI) -> None:
    logger = logging.getLogger("uvicorn.error")

    @app.middleware("http")
    async def audit_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "audit method=%s path=%s status=%s duration_ms=%.1f ip=%s session=%s origin=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request.client.host if request.client else "-",
            bool(request.headers.get(SESSION_HEADER)),
            request.headers.get("origin") or "-",
        )
        return response
