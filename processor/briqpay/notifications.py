"""
Traitement des webhooks Briqpay.

La session est relue chez Briqpay avant tout traitement: le corps du webhook n'est pas authentifié,
le statut utilisé est celui de la session (moduleStatus, captures, refunds).

Règle "ensure": avant toute écriture, une transaction (type, interactionId) déjà dans un état
acceptable rend le webhook sans effet. Rejouer un webhook ne produit donc qu'une seule mutation.
"""
import logging
from typing import Any, Dict, Optional

from processor.briqpay import provider
from processor.briqpay.models import NotificationRequest
from processor.briqpay.operations import OperationService
from processor.briqpay.session_data import SessionDataService
from processor.briqpay.status import (
    TransactionState,
    TransactionType,
    WebhookEvent,
    WebhookStatus,
    get_actual_capture_status,
    get_actual_order_status,
    get_actual_refund_status,
    get_capture,
    get_refund,
    order_status_to_webhook_status,
    transaction_status_to_webhook_status,
)
from processor.commercetools import payments
from processor.errors import PlatformError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

_SUCCESS = TransactionState.SUCCESS.value
_PENDING = TransactionState.PENDING.value
_FAILURE = TransactionState.FAILURE.value


def _session_amount(session: Dict[str, Any], payment: Dict[str, Any]) -> Dict[str, Any]:
    order = (session.get("data") or {}).get("order") or {}
    planned = payment.get("amountPlanned") or {}
    return {
        "centAmount": order.get("amountIncVat", planned.get("centAmount")),
        "currencyCode": order.get("currency") or planned.get("currencyCode"),
    }


def _entry_amount(entry: Optional[Dict[str, Any]], payment: Dict[str, Any]) -> Dict[str, Any]:
    planned = payment.get("amountPlanned") or {}
    cent = (entry or {}).get("amountIncVat")
    return {
        "centAmount": cent if cent is not None else planned.get("centAmount"),
        "currencyCode": planned.get("currencyCode"),
    }


class NotificationService:
    def __init__(self, operations: OperationService, session_data: SessionDataService):
        self.operations = operations
        self.session_data = session_data

    async def _fetch_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = await provider.get_session(session_id)
        except UpstreamError as e:
            # session inconnue: webhook forgé; toute autre erreur remonte pour que Briqpay relivre
            if e.upstream_status == 404:
                logger.error("webhook session %s not found at Briqpay", session_id)
                raise ValidationError("Webhook validation failed: Invalid session")
            logger.error("webhook session %s could not be fetched: %s", session_id, e.message)
            raise
        if not session or session.get("sessionId") != session_id:
            logger.error("webhook session id mismatch claimed=%s fetched=%s", session_id, (session or {}).get("sessionId"))
            raise ValidationError("Webhook validation failed: Invalid session")
        return session

    async def _find_payment(self, session_id: str) -> Optional[Dict[str, Any]]:
        found = await payments.find_payments_by_interface_id(session_id)
        return found[0] if found else None

    async def process_notification(self, notification: NotificationRequest) -> None:
        """
        Applique un webhook au paiement local.
        - order_status: Authorization (création du paiement si absent)
        - capture_status / refund_status: Charge / Refund par captureId / refundId
        - paiement introuvable côté commercetools: journalisé puis accepté
        - toute autre erreur remonte (Briqpay relivrera le webhook)
        """
        logger.info(
            "notification event=%s status=%s session=%s",
            notification.event.value, notification.status.value, notification.sessionId,
        )
        session = await self._fetch_session(notification.sessionId)
        try:
            if notification.event == WebhookEvent.ORDER_STATUS:
                await self._handle_order(notification, session)
            elif notification.event == WebhookEvent.CAPTURE_STATUS:
                await self._handle_capture(notification, session)
            elif notification.event == WebhookEvent.REFUND_STATUS:
                await self._handle_refund(notification, session)
            else:
                logger.info("event %s ignored", notification.event.value)
        except PlatformError as e:
            if e.is_not_found:
                logger.info("Payment not found hence accepting the notification session=%s", notification.sessionId)
                return
            logger.error("notification processing failed session=%s: %s", notification.sessionId, e.message)
            raise

    async def _handle_order(self, notification: NotificationRequest, session: Dict[str, Any]) -> None:
        actual = get_actual_order_status(session)
        if not actual:
            logger.warning("no order status on session %s, notification skipped", notification.sessionId)
            return
        status = order_status_to_webhook_status(actual)
        if status != notification.status:
            logger.info("webhook status %s superseded by session status %s", notification.status.value, status.value)

        session_id = notification.sessionId
        payment = await self._find_payment(session_id)
        auth = TransactionType.AUTHORIZATION.value

        if status == WebhookStatus.ORDER_PENDING:
            if payment and payments.find_transaction(payment, auth, session_id, (_SUCCESS, _PENDING)):
                logger.info("authorization %s already recorded, nothing to do", session_id)
                return
            if not payment:
                await self.operations.create_payment(session_id, status)
                return
            await payments.update_payment(
                payment["id"],
                transaction={
                    "type": auth,
                    "interactionId": session_id,
                    "amount": _session_amount(session, payment),
                    "state": _PENDING,
                },
            )
            return

        if status == WebhookStatus.ORDER_APPROVED_NOT_CAPTURED:
            if not payment:
                payment_id = (await self.operations.create_payment(session_id, status))["paymentReference"]
            else:
                payment_id = payment["id"]
                if payments.find_transaction(payment, auth, session_id, (_SUCCESS,)):
                    logger.info("authorization %s already Success, nothing to do", session_id)
                else:
                    await payments.update_payment(
                        payment_id,
                        transaction={
                            "type": auth,
                            "interactionId": session_id,
                            "amount": _session_amount(session, payment),
                            "state": _SUCCESS,
                        },
                    )
            await self.session_data.ingest_for_payment(session_id, payment_id)
            return

        logger.info("order %s for session %s, no payment update", status.value, session_id)

    async def _handle_capture(self, notification: NotificationRequest, session: Dict[str, Any]) -> None:
        capture_id = notification.captureId
        if not capture_id:
            logger.warning("capture notification without captureId session=%s", notification.sessionId)
            return
        actual = get_actual_capture_status(session, capture_id)
        if not actual:
            logger.warning("capture %s not found on session %s, notification skipped", capture_id, notification.sessionId)
            return
        await self._apply_transaction(
            notification.sessionId,
            TransactionType.CHARGE,
            capture_id,
            transaction_status_to_webhook_status(actual),
            get_capture(session, capture_id),
            ingest=True,
        )

    async def _handle_refund(self, notification: NotificationRequest, session: Dict[str, Any]) -> None:
        refund_id = notification.refundId
        if not refund_id:
            logger.warning("refund notification without refundId session=%s", notification.sessionId)
            return
        actual = get_actual_refund_status(session, refund_id)
        if not actual:
            logger.warning("refund %s not found on session %s, notification skipped", refund_id, notification.sessionId)
            return
        await self._apply_transaction(
            notification.sessionId,
            TransactionType.REFUND,
            refund_id,
            transaction_status_to_webhook_status(actual),
            get_refund(session, refund_id),
        )

    async def _apply_transaction(
        self,
        session_id: str,
        tx_type: TransactionType,
        interaction_id: str,
        status: WebhookStatus,
        entry: Optional[Dict[str, Any]],
        ingest: bool = False,
    ) -> None:
        payment = await self._find_payment(session_id)
        if not payment:
            logger.info("Payment not found hence accepting the notification session=%s", session_id)
            return

        if status == WebhookStatus.REJECTED:
            state = _FAILURE
        else:
            state = _SUCCESS if status == WebhookStatus.APPROVED else _PENDING
            accepted = (_SUCCESS,) if state == _SUCCESS else (_SUCCESS, _PENDING)
            if payments.find_transaction(payment, tx_type.value, interaction_id, accepted):
                logger.info("%s %s already recorded, nothing to do", tx_type.value, interaction_id)
                return
            await self.operations.promote_pending_authorization(payment, session_id)

        await payments.update_payment(
            payment["id"],
            transaction={
                "type": tx_type.value,
                "interactionId": interaction_id,
                "amount": _entry_amount(entry, payment),
                "state": state,
            },
        )
        logger.info("%s %s set to %s on payment %s", tx_type.value, interaction_id, state, payment["id"])
        if ingest and state == _SUCCESS:
            await self.session_data.ingest_for_payment(session_id, payment["id"])
