"""
Statuts Briqpay et états de transaction commercetools.
- WebhookStatus: valeurs reçues sur le fil (webhooks, moduleStatus, captures/refunds)
- TransactionState: état local d'une transaction de paiement
- to_transaction_state: unique point de passage entre les deux
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class WebhookEvent(str, Enum):
    SESSION_STATUS = "session_status"
    ORDER_STATUS = "order_status"
    CAPTURE_STATUS = "capture_status"
    REFUND_STATUS = "refund_status"


class WebhookStatus(str, Enum):
    # Commandes
    ORDER_PENDING = "order_pending"
    ORDER_REJECTED = "order_rejected"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_APPROVED_NOT_CAPTURED = "order_approved_not_captured"
    # Captures et remboursements
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TransactionState(str, Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILURE = "Failure"


class TransactionType(str, Enum):
    AUTHORIZATION = "Authorization"
    CHARGE = "Charge"
    REFUND = "Refund"
    CANCEL_AUTHORIZATION = "CancelAuthorization"


class PaymentOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


class ModificationStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    RECEIVED = "received"


_SUCCESS = {WebhookStatus.ORDER_APPROVED_NOT_CAPTURED, WebhookStatus.APPROVED}
_PENDING = {WebhookStatus.ORDER_PENDING, WebhookStatus.PENDING}
_FAILURE = {
    WebhookStatus.ORDER_REJECTED,
    WebhookStatus.ORDER_CANCELLED,
    WebhookStatus.REJECTED,
    WebhookStatus.CANCELLED,
}


def _coerce(value: Any) -> Optional[WebhookStatus]:
    if isinstance(value, WebhookStatus):
        return value
    try:
        return WebhookStatus(str(getattr(value, "value", value)))
    except ValueError:
        return None


def to_transaction_state(value: Any) -> TransactionState:
    """
    Statut Briqpay (webhook ou résultat d'opération) -> état de transaction.
    - approved / order_approved_not_captured -> Success
    - pending / order_pending -> Pending
    - rejected / order_rejected / order_cancelled / cancelled -> Failure
    - valeur inconnue -> Pending (jamais Failure), avec un warning
    """
    status = _coerce(value)
    if status in _SUCCESS:
        return TransactionState.SUCCESS
    if status in _FAILURE:
        return TransactionState.FAILURE
    if status not in _PENDING:
        logger.warning("Unknown Briqpay status %r mapped to Pending", value)
    return TransactionState.PENDING


def to_modification_status(outcome: Any) -> ModificationStatus:
    status = _coerce(outcome)
    if status == WebhookStatus.APPROVED:
        return ModificationStatus.APPROVED
    if status == WebhookStatus.REJECTED:
        return ModificationStatus.REJECTED
    return ModificationStatus.RECEIVED


def transaction_status_to_webhook_status(value: Optional[str]) -> WebhookStatus:
    # cancelled est traité comme rejected côté transaction
    status = _coerce(value)
    if status == WebhookStatus.CANCELLED:
        return WebhookStatus.REJECTED
    if status in (WebhookStatus.APPROVED, WebhookStatus.PENDING, WebhookStatus.REJECTED):
        return status
    return WebhookStatus.PENDING


def order_status_to_webhook_status(value: Optional[str]) -> WebhookStatus:
    status = _coerce(value)
    if status in (
        WebhookStatus.ORDER_PENDING,
        WebhookStatus.ORDER_APPROVED_NOT_CAPTURED,
        WebhookStatus.ORDER_REJECTED,
        WebhookStatus.ORDER_CANCELLED,
    ):
        return status
    return WebhookStatus.ORDER_PENDING


# --- Lecture de l'état réel depuis la session Briqpay ---

def get_actual_order_status(session: Dict[str, Any]) -> Optional[str]:
    return (((session or {}).get("moduleStatus") or {}).get("payment") or {}).get("orderStatus")


def _find(entries: Optional[List[Dict[str, Any]]], key: str, wanted: str) -> Optional[Dict[str, Any]]:
    for entry in entries or []:
        if entry.get(key) == wanted:
            return entry
    return None


def get_capture(session: Dict[str, Any], capture_id: str) -> Optional[Dict[str, Any]]:
    """Cherche d'abord dans data.captures, puis dans captures (niveau racine)."""
    data = (session or {}).get("data") or {}
    return _find(data.get("captures"), "captureId", capture_id) or _find(session.get("captures"), "captureId", capture_id)


def get_refund(session: Dict[str, Any], refund_id: str) -> Optional[Dict[str, Any]]:
    data = (session or {}).get("data") or {}
    return _find(data.get("refunds"), "refundId", refund_id) or _find(session.get("refunds"), "refundId", refund_id)


def get_actual_capture_status(session: Dict[str, Any], capture_id: str) -> Optional[str]:
    capture = get_capture(session, capture_id)
    return capture.get("status") if capture else None


def get_actual_refund_status(session: Dict[str, Any], refund_id: str) -> Optional[str]:
    refund = get_refund(session, refund_id)
    return refund.get("status") if refund else None


def get_primary_transaction(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    transactions = ((session or {}).get("data") or {}).get("transactions") or []
    return transactions[0] if transactions else None
