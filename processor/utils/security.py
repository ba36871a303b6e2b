import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from processor.errors import PlatformError
from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"
OPERATOR_SCOPE = "manage_payments"
DEFAULT_PAYMENT_INTERFACE = "Briqpay"


async def get_checkout_context(request: Request) -> Dict[str, Any]:
    """
    Contexte de la session checkout (en-tête X-Session-Id).
    - la session doit être ACTIVE
    Retour: {session_id, cart_id, payment_interface, future_order_number}
    """
    session_id = (request.headers.get(SESSION_HEADER) or "").strip()
    if not session_id:
        raise HTTPException(status_code=401, detail="Session checkout manquante")
    try:
        session = await ct.get_commercetools_client().get_checkout_session(session_id)
    except PlatformError as e:
        logger.info("checkout session %s rejected: %s", session_id, e.message)
        raise HTTPException(status_code=401, detail="Session checkout invalide")

    if session.get("state") != "ACTIVE":
        raise HTTPException(status_code=401, detail="Session checkout expirée")
    cart_id = (((session.get("activeCart") or {}).get("cartRef")) or {}).get("id")
    if not cart_id:
        raise HTTPException(status_code=401, detail="Session checkout sans panier")
    metadata = session.get("metadata") or {}
    return {
        "session_id": session_id,
        "cart_id": cart_id,
        "payment_interface": metadata.get("paymentInterface") or DEFAULT_PAYMENT_INTERFACE,
        "future_order_number": metadata.get("futureOrderNumber"),
    }


async def require_session(request: Request) -> Dict[str, Any]:
    return await get_checkout_context(request)


def _bearer(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


async def require_operator(request: Request) -> Dict[str, Any]:
    """Jeton opérateur (Bearer) validé par introspection; scope manage_payments requis."""
    token = _bearer(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")
    try:
        info = await ct.get_commercetools_client().introspect_token(token)
    except PlatformError as e:
        logger.warning("token introspection failed: %s", e.message)
        raise HTTPException(status_code=401, detail="Non authentifié")

    if not info.get("active"):
        raise HTTPException(status_code=401, detail="Jeton expiré ou révoqué")
    scopes = (info.get("scope") or "").split()
    if not any(s.split(":", 1)[0] == OPERATOR_SCOPE for s in scopes):
        raise HTTPException(status_code=403, detail="Accès interdit")
    return info
