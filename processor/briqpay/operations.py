"""
Opérations de cycle de vie d'un paiement Briqpay (capture, annulation, remboursement, reverse)
et création du paiement commercetools.

Chaque opération vérifie ses préconditions AVANT d'appeler Briqpay:
- capture: autorisation présente, aucune Charge hors Failure, montant = total du cart
- cancel: autorisation présente, aucune Charge Success
- refund: Charge Success, aucun Refund hors Failure, montant = total du cart
- reverse: refund si capturé, sinon cancel si autorisé, sinon erreur
"""
import logging
from typing import Any, Dict, Optional

from processor import config
from processor.briqpay import provider
from processor.briqpay.cart import build_cart_items, build_order_data
from processor.briqpay.status import (
    TransactionState,
    TransactionType,
    to_modification_status,
    to_transaction_state,
)
from processor.commercetools import carts, payments
from processor.errors import InvalidOperationError, SessionError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_INTERFACE = "Briqpay"

_SUCCESS = TransactionState.SUCCESS.value
_PENDING = TransactionState.PENDING.value


def _authorization_session_id(payment: Dict[str, Any], states=None) -> Optional[str]:
    tx = payments.find_transaction(payment, TransactionType.AUTHORIZATION.value, states=states)
    return tx.get("interactionId") if tx else None


def _has_active(payment: Dict[str, Any], tx_type: TransactionType) -> bool:
    return payments.has_transaction_in_state(payment, tx_type.value, (_SUCCESS, _PENDING))


def _modification(status: Any, payment: Dict[str, Any]) -> Dict[str, Any]:
    return {"outcome": to_modification_status(status).value, "pspReference": payment.get("interfaceId")}


class OperationService:
    async def promote_pending_authorization(self, payment: Dict[str, Any], session_id: str) -> None:
        pending = payments.find_transaction(payment, TransactionType.AUTHORIZATION.value, session_id, (_PENDING,))
        if pending:
            await payments.update_payment(
                payment["id"],
                transaction={
                    "type": TransactionType.AUTHORIZATION.value,
                    "interactionId": session_id,
                    "amount": pending.get("amount"),
                    "state": _SUCCESS,
                },
            )
            logger.info("pending authorization %s promoted to Success", session_id)

    async def _order_for(self, cart: Dict[str, Any], amount: Dict[str, Any]) -> Dict[str, Any]:
        items, rate = await build_cart_items(cart)
        return build_order_data(cart, amount, items, rate)

    async def capture_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session_id = _authorization_session_id(payment, (_SUCCESS, _PENDING))
        if not session_id:
            raise SessionError("Cannot find briqpay session for capture")
        if _has_active(payment, TransactionType.CHARGE):
            raise InvalidOperationError("Already captured")

        cart = await carts.get_cart_by_payment_id(payment["id"])
        expected = carts.get_payment_amount(cart)["centAmount"]
        if (amount or {}).get("centAmount") != expected:
            raise ValidationError("Partial captures are not supported, amount must equal the cart total")

        result = await provider.capture(session_id, await self._order_for(cart, payment["amountPlanned"]))
        logger.info("capture session=%s capture=%s status=%s", session_id, result.get("captureId"), result.get("status"))

        await self.promote_pending_authorization(payment, session_id)
        await payments.update_payment(
            payment["id"],
            transaction={
                "type": TransactionType.CHARGE.value,
                "interactionId": result.get("captureId"),
                "amount": amount,
                "state": to_transaction_state(result.get("status")).value,
            },
        )
        return _modification(result.get("status"), payment)

    async def cancel_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        session_id = _authorization_session_id(payment)
        if not session_id:
            raise SessionError("Cannot find briqpay session for cancellation")
        if payments.has_transaction_in_state(payment, TransactionType.CHARGE.value, (_SUCCESS,)):
            raise InvalidOperationError("Cannot cancel a payment that has been captured")

        result = await provider.cancel(session_id)
        await payments.update_payment(
            payment["id"],
            transaction={
                "type": TransactionType.CANCEL_AUTHORIZATION.value,
                "interactionId": session_id,
                "amount": payment["amountPlanned"],
                "state": to_transaction_state(result.get("status")).value,
            },
        )
        logger.info("cancel session=%s status=%s", session_id, result.get("status"))
        return _modification(result.get("status"), payment)

    async def refund_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session_id = _authorization_session_id(payment)
        if not session_id:
            raise InvalidOperationError("Cannot find briqpay session")
        capture = payments.find_transaction(payment, TransactionType.CHARGE.value, states=(_SUCCESS,))
        if not capture:
            raise InvalidOperationError("Must have a successful capture first")
        if _has_active(payment, TransactionType.REFUND):
            raise InvalidOperationError("Already refunded")

        cart = await carts.get_cart_by_payment_id(payment["id"])
        expected = carts.get_payment_amount(cart)["centAmount"]
        if (amount or {}).get("centAmount") != expected:
            logger.error("refund amount mismatch requested=%s expected=%s", (amount or {}).get("centAmount"), expected)
            raise ValidationError("Partial refunds are not supported, amount must equal the cart total")

        result = await provider.refund(
            session_id, await self._order_for(cart, payment["amountPlanned"]), capture.get("interactionId")
        )
        logger.info("refund session=%s refund=%s status=%s", session_id, result.get("refundId"), result.get("status"))

        await self.promote_pending_authorization(payment, session_id)
        await payments.update_payment(
            payment["id"],
            transaction={
                "type": TransactionType.REFUND.value,
                "interactionId": result.get("refundId"),
                "amount": amount,
                "state": to_transaction_state(result.get("status")).value,
            },
        )
        return _modification(result.get("status"), payment)

    async def reverse_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        reverted = _has_active(payment, TransactionType.REFUND) or _has_active(
            payment, TransactionType.CANCEL_AUTHORIZATION
        )
        if not reverted and payments.has_transaction_in_state(payment, TransactionType.CHARGE.value, (_SUCCESS,)):
            return await self.refund_payment(payment, payment["amountPlanned"])
        if not reverted and payments.has_transaction_in_state(payment, TransactionType.AUTHORIZATION.value, (_SUCCESS,)):
            return await self.cancel_payment(payment)
        raise InvalidOperationError("There is no successful payment transaction to reverse.")

    async def create_payment(
        self,
        session_id: str,
        outcome: Any,
        payment_method: str = "briqpay",
        cart_id: Optional[str] = None,
        payment_interface: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Crée le paiement commercetools d'un checkout et son Authorization.
        - cart_id: cart de la session checkout; à défaut, cart portant cet id de session Briqpay
        - outcome: résultat navigateur (approved/pending/rejected) ou statut webhook
        Retour: {"paymentReference": <payment id>}
        """
        if cart_id:
            cart = await carts.get_cart(cart_id)
        else:
            cart = await carts.find_cart_by_custom_field(config.BRIQPAY_SESSION_ID_FIELD, session_id)

        draft: Dict[str, Any] = {
            "amountPlanned": {
                k: v for k, v in carts.get_payment_amount(cart).items() if k in ("centAmount", "currencyCode")
            },
            "paymentMethodInfo": {"paymentInterface": payment_interface or DEFAULT_PAYMENT_INTERFACE},
        }
        if cart.get("customerId"):
            draft["customer"] = {"typeId": "customer", "id": cart["customerId"]}
        elif cart.get("anonymousId"):
            draft["anonymousId"] = cart["anonymousId"]
        payment = await payments.create_payment(draft)

        # version courante: le cart a pu changer depuis la lecture
        fresh = await carts.get_cart(cart["id"])
        await carts.add_payment(fresh, payment["id"])

        psp_reference = ((fresh.get("custom") or {}).get("fields") or {}).get(config.BRIQPAY_SESSION_ID_FIELD) or session_id
        updated = await payments.update_payment(
            payment["id"],
            psp_reference=psp_reference,
            payment_method=payment_method,
            transaction={
                "type": TransactionType.AUTHORIZATION.value,
                "interactionId": psp_reference,
                "amount": payment["amountPlanned"],
                "state": to_transaction_state(outcome).value,
            },
        )
        logger.info("payment %s created for cart %s session %s", updated.get("id"), cart["id"], psp_reference)
        return {"paymentReference": updated.get("id") or payment["id"]}
