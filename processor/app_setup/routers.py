"""
Registre central des routers.
- Checkout: /config, /decision, /payments (session checkout)
- Webhooks: /notifications
- Opérations: /operations/* (jeton opérateur)
- Health: /health
"""
from fastapi import FastAPI

from processor.briqpay import views as briqpay_views
from processor.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    app.include_router(briqpay_views.router)
    app.include_router(briqpay_views.operations_router)
    app.include_router(health_router)
