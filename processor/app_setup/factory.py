"""
Factory d'application pour les entrypoints (ex: processor.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI

from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_audit_middleware, register_basic_middlewares, register_security_middleware
from .routers import register_routers


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares CORS/TrustedHost, en-têtes de sécurité, audit
      - gestionnaires d'exceptions
      - tous les routers (checkout, webhooks, opérations, health)
    """
    app = FastAPI(title="Briqpay payment processor", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    # ajouté en dernier pour couvrir toute la pile
    register_audit_middleware(app)
    return app
