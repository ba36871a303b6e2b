import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError as SchemaError

from processor import config
from processor.briqpay import webhook_verification
from processor.briqpay.models import (
    DecisionRequest,
    DecisionResponse,
    NotificationRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentRequest,
    PaymentResponse,
)
from processor.briqpay.service import BriqpayPaymentService, get_payment_service
from processor.errors import BriqpayError
from processor.utils.rate_limit import optional_rate_limit
from processor.utils.security import require_operator, require_session

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Briqpay"])
operations_router = APIRouter(prefix="/operations", tags=["Operations"])


# module processor.briqpay.views
@router.get("/config", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
async def get_config(
    request: Request,
    ctx: Dict[str, Any] = Depends(require_session),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    """
    Session Briqpay du cart de la session checkout (création, réutilisation ou mise à jour).
    - Sécurité: require_session (X-Session-Id) + rate limit (30 req / 60s)
    - Hôte des webhooks: PREVIEW_HOSTNAME, sinon l'en-tête Host
    - Origine client (Origin puis Referer): URL de confirmation en développement local
    - Réponse: {briqpaySessionId, snippet, environment}
    """
    hostname = config.PREVIEW_HOSTNAME or request.headers.get("host") or request.url.netloc
    client_origin = request.headers.get("origin") or request.headers.get("referer")
    try:
        return await service.config(ctx, hostname, client_origin)
    except (HTTPException, BriqpayError):
        raise
    except Exception:
        logger.exception("Erreur get_config cart=%s", ctx.get("cart_id"))
        raise HTTPException(status_code=500, detail="Unable to prepare Briqpay session")


@router.post(
    "/decision",
    response_model=DecisionResponse,
    dependencies=[Depends(optional_rate_limit(times=30, seconds=60))],
)
async def post_decision(
    body: DecisionRequest,
    ctx: Dict[str, Any] = Depends(require_session),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    """Transmet la décision du marchand (allow/reject) à Briqpay pour la session."""
    try:
        return await service.make_decision(body)
    except (HTTPException, BriqpayError):
        raise
    except Exception:
        logger.exception("Erreur post_decision session=%s", body.sessionId)
        raise HTTPException(status_code=500, detail="Unable to forward decision")


@router.post(
    "/payments",
    response_model=PaymentResponse,
    dependencies=[Depends(optional_rate_limit(times=10, seconds=60))],
)
async def post_payment(
    body: PaymentRequest,
    ctx: Dict[str, Any] = Depends(require_session),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    """
    Crée le paiement commercetools après le retour du widget.
    - Entrée: {paymentMethod: {type: "briqpay"}, briqpaySessionId, paymentOutcome}
    - Réponse: {paymentReference}
    """
    try:
        return await service.create_payment(body, ctx)
    except (HTTPException, BriqpayError):
        raise
    except Exception:
        logger.exception("Erreur post_payment session=%s", body.briqpaySessionId)
        raise HTTPException(status_code=500, detail="Unable to create payment")


@router.post("/notifications", include_in_schema=False)
async def post_notification(request: Request, service: BriqpayPaymentService = Depends(get_payment_service)):
    """
    Webhook Briqpay.
    - Signature: x-briq-signature vérifiée sur le corps brut si BRIQPAY_WEBHOOK_SECRET est défini (401 sinon)
    - Corps: NotificationRequest (400 si invalide)
    - Réponse: "[accepted]"; une erreur non gérée renvoie 5xx pour que Briqpay relivre
    """
    raw = await request.body()
    if webhook_verification.is_hmac_verification_enabled():
        header = request.headers.get(webhook_verification.SIGNATURE_HEADER)
        if not header:
            logger.warning("webhook rejected: missing %s header", webhook_verification.SIGNATURE_HEADER)
            raise HTTPException(status_code=401, detail="Missing webhook signature")
        result = webhook_verification.verify(
            raw.decode("utf-8", errors="replace"), header, webhook_verification.get_webhook_secret()
        )
        if not result.is_valid:
            logger.warning("webhook rejected: %s", result.error)
            raise HTTPException(status_code=401, detail=result.error)

    try:
        notification = NotificationRequest.model_validate_json(raw)
    except SchemaError as e:
        logger.warning("webhook rejected: invalid payload (%s errors)", e.error_count())
        raise HTTPException(status_code=400, detail="Invalid notification payload")

    try:
        await service.process_notification(notification)
    except (HTTPException, BriqpayError):
        raise
    except Exception:
        logger.exception("Erreur post_notification session=%s", notification.sessionId)
        raise HTTPException(status_code=500, detail="Notification processing failed")
    return PlainTextResponse("[accepted]")


@operations_router.get("/config")
async def operations_config(_: Dict[str, Any] = Depends(require_operator)):
    return {"environment": config.PAYMENT_ENVIRONMENT}


@operations_router.get("/status")
async def operations_status(
    _: Dict[str, Any] = Depends(require_operator),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    return await service.status()


@operations_router.get("/payment-components")
async def operations_payment_components(
    _: Dict[str, Any] = Depends(require_operator),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    return service.get_supported_payment_components()


@operations_router.post("/payment-intents/{payment_id}", response_model=PaymentIntentResponse)
async def operations_payment_intent(
    payment_id: str,
    body: PaymentIntentRequest,
    _: Dict[str, Any] = Depends(require_operator),
    service: BriqpayPaymentService = Depends(get_payment_service),
):
    """
    Capture, remboursement, annulation ou reverse d'un paiement.
    - Entrée: {actions: [{action, amount?}], merchantReference?}
    - Préconditions non respectées: 400 {"code": "INVALID_OPERATION", "message"}
    - Réponse: {outcome: approved|rejected|received}
    """
    try:
        result = await service.modify_payment(payment_id, body)
        return {"outcome": result["outcome"]}
    except (HTTPException, BriqpayError):
        raise
    except Exception:
        logger.exception("Erreur payment intent payment=%s", payment_id)
        raise HTTPException(status_code=500, detail="Payment modification failed")
