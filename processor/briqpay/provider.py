"""
Adaptateur API Briqpay v3: centralise les appels HTTP vers Briqpay.
- Authentification Basic (client httpx partagé, voir processor.infra.briqpay_client)
- Réponse non 2xx: statut et corps journalisés, puis UpstreamError
- Erreur réseau: UpstreamError avec la cause d'origine
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from processor import config
from processor.briqpay.status import PaymentOutcome
from processor.errors import UpstreamError
from processor.infra import briqpay_client

logger = logging.getLogger(__name__)

SESSION_FIELDS = "data,snippet,sessionId,moduleStatus,captures,refunds"


# module processor.briqpay.provider
async def _send(method: str, url: str, what: str, **kwargs) -> httpx.Response:
    try:
        resp = await briqpay_client.get_briqpay_client().request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error("Briqpay %s: network error %s", what, e)
        raise UpstreamError(f"Briqpay {what} failed", cause=e)
    if not resp.is_success:
        logger.error("Briqpay %s failed status=%s body=%s", what, resp.status_code, resp.text)
        raise UpstreamError(
            f"Briqpay {what} failed with status {resp.status_code}",
            status=resp.status_code,
            body=resp.text,
        )
    return resp


def _require_session_id(payload: Dict[str, Any], what: str) -> Dict[str, Any]:
    if not payload or not payload.get("sessionId"):
        logger.error("Briqpay %s: response without sessionId", what)
        raise UpstreamError("Invalid Briqpay session response: missing sessionId")
    return payload


async def create_session(body: Dict[str, Any]) -> Dict[str, Any]:
    """POST /session. Retour: session créée (sessionId, htmlSnippet, data...)."""
    resp = await _send("POST", "/session", "session creation", json=body)
    return _require_session_id(resp.json(), "session creation")


async def update_session(session_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    resp = await _send("PATCH", f"/session/{session_id}", "session update", json=body)
    return _require_session_id(resp.json(), "session update")


async def get_session(session_id: str) -> Dict[str, Any]:
    """GET /session/{id} en demandant aussi moduleStatus, captures et refunds (état réel côté Briqpay)."""
    resp = await _send("GET", f"/session/{session_id}", "session retrieval", params={"fields": SESSION_FIELDS})
    return resp.json()


async def get_full_session(session_id: str) -> Dict[str, Any]:
    """Session complète, pspMetadata et transactions compris."""
    resp = await _send("GET", f"/session/{session_id}", "full session retrieval")
    return resp.json()


async def capture(session_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    """Retour: {captureId, status, ...}"""
    resp = await _send("POST", f"/session/{session_id}/order/capture", "capture", json={"data": {"order": order}})
    return resp.json()


async def refund(session_id: str, order: Dict[str, Any], capture_id: Optional[str] = None) -> Dict[str, Any]:
    """Retour: {refundId, status, ...}"""
    body: Dict[str, Any] = {"data": {"order": order}}
    if capture_id:
        body["captureId"] = capture_id
    resp = await _send("POST", f"/session/{session_id}/order/refund", "refund", json=body)
    return resp.json()


async def cancel(session_id: str) -> Dict[str, Any]:
    # Briqpay répond 204 sans corps en cas de succès
    await _send("POST", f"/session/{session_id}/order/cancel", "cancel")
    return {"status": PaymentOutcome.APPROVED.value}


async def make_decision(session_id: str, decision: Dict[str, Any]) -> None:
    await _send("POST", f"/session/{session_id}/decision", "decision", json=decision)


async def health_check() -> None:
    parts = urlsplit(config.BRIQPAY_BASE_URL)
    await _send("GET", f"{parts.scheme}://{parts.netloc}", "health check", timeout=config.HEALTH_CHECK_TIMEOUT)
