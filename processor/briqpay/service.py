"""
Cas d'usage 'briqpay': point d'entrée unique des routes.
Orchestre réconciliation de session, opérations de paiement et webhooks.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Protocol

from processor import config
from processor.briqpay import provider
from processor.briqpay.models import (
    DecisionRequest,
    NotificationRequest,
    PaymentIntentActionType,
    PaymentIntentRequest,
    PaymentRequest,
)
from processor.briqpay.notifications import NotificationService
from processor.briqpay.operations import OperationService
from processor.briqpay.session import SessionService
from processor.briqpay.session_data import SessionDataService
from processor.commercetools import carts, payments
from processor.commercetools.custom_types import CustomTypeResolver
from processor.errors import ValidationError
from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)

STATUS_NAME = "Briqpay Payment API"


class PaymentService(Protocol):
    async def config(self, context: Dict[str, Any], hostname: str, client_origin: Optional[str] = None) -> Dict[str, Any]: ...

    async def status(self) -> Dict[str, Any]: ...

    def get_supported_payment_components(self) -> Dict[str, Any]: ...

    async def create_payment(self, request: PaymentRequest, context: Dict[str, Any]) -> Dict[str, Any]: ...

    async def capture_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    async def cancel_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]: ...

    async def refund_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    async def reverse_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]: ...

    async def process_notification(self, notification: NotificationRequest) -> None: ...


class BriqpayPaymentService:
    """
    Implémentation Briqpay de PaymentService.
    - custom_types: résolveur du type personnalisé (partagé entre cart et commande)
    """

    def __init__(self, custom_types: Optional[CustomTypeResolver] = None):
        self.custom_types = custom_types or CustomTypeResolver(config.BRIQPAY_SESSION_CUSTOM_TYPE_KEY)
        self.sessions = SessionService(self.custom_types)
        self.session_data = SessionDataService(self.custom_types)
        self.operations = OperationService()
        self.notifications = NotificationService(self.operations, self.session_data)

    async def config(self, context: Dict[str, Any], hostname: str, client_origin: Optional[str] = None) -> Dict[str, Any]:
        """
        Réconcilie la session Briqpay du cart courant puis mémorise son id sur le cart.
        - context: {cart_id, future_order_number?} issu de la session checkout
        - hostname: hôte public du processor (URL des webhooks)
        Retour: {briqpaySessionId, snippet, environment}
        """
        cart = await carts.get_cart(context["cart_id"])
        if not cart.get("shippingAddress"):
            raise ValidationError("Cart is missing a shipping address. Taxes cannot be calculated.")
        if not cart.get("billingAddress"):
            raise ValidationError("Cart is missing a billing address. Taxes cannot be calculated.")

        amount = carts.get_payment_amount(cart)
        session = await self.sessions.create_or_update_session(
            cart, amount, hostname, context.get("future_order_number"), client_origin
        )
        await self.sessions.update_cart_with_session_id(cart, session["sessionId"])
        return {
            "briqpaySessionId": session["sessionId"],
            "snippet": session.get("htmlSnippet"),
            "environment": config.PAYMENT_ENVIRONMENT,
        }

    async def status(self) -> Dict[str, Any]:
        checks: List[Dict[str, Any]] = []
        try:
            await ct.get_commercetools_client().get("")
            checks.append({"name": "CoCo Permissions", "status": "UP"})
        except Exception as e:
            logger.warning("status: commercetools check failed: %s", e)
            checks.append({"name": "CoCo Permissions", "status": "DOWN", "message": str(e)})
        try:
            await provider.health_check()
            checks.append({"name": "Briqpay Status check", "status": "UP"})
        except Exception as e:
            logger.warning("status: Briqpay check failed: %s", e)
            checks.append({"name": "Briqpay Status check", "status": "DOWN", "message": str(e)})

        return {
            "name": STATUS_NAME,
            "status": "UP" if all(c["status"] == "UP" for c in checks) else "DOWN",
            "timestamp": int(time.time() * 1000),
            "checks": checks,
            "metadata": {"environment": config.PAYMENT_ENVIRONMENT, "baseUrl": config.BRIQPAY_BASE_URL},
        }

    def get_supported_payment_components(self) -> Dict[str, Any]:
        return {"dropins": [{"type": "embedded"}], "components": []}

    async def create_payment(self, request: PaymentRequest, context: Dict[str, Any]) -> Dict[str, Any]:
        return await self.operations.create_payment(
            request.briqpaySessionId,
            request.paymentOutcome,
            payment_method=request.paymentMethod.type.value,
            cart_id=context.get("cart_id"),
            payment_interface=context.get("payment_interface"),
        )

    async def capture_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.operations.capture_payment(payment, amount)

    async def cancel_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        return await self.operations.cancel_payment(payment)

    async def refund_payment(self, payment: Dict[str, Any], amount: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.operations.refund_payment(payment, amount)

    async def reverse_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        return await self.operations.reverse_payment(payment)

    async def process_notification(self, notification: NotificationRequest) -> None:
        await self.notifications.process_notification(notification)

    async def make_decision(self, request: DecisionRequest) -> Dict[str, Any]:
        await provider.make_decision(request.sessionId, request.to_provider_body())
        logger.info("decision %s forwarded for session %s", request.decision.value, request.sessionId)
        return {"success": True, "decision": request.decision.value}

    async def modify_payment(self, payment_id: str, request: PaymentIntentRequest) -> Dict[str, Any]:
        """
        Applique l'unique action d'un payment intent.
        - capturePayment / refundPayment: montant requis
        Retour: {outcome, pspReference}
        """
        payment = await payments.get_payment(payment_id)
        action = request.actions[0]
        amount = action.amount.model_dump() if action.amount else None
        logger.info("payment intent %s on payment %s", action.action.value, payment_id)

        if action.action == PaymentIntentActionType.CAPTURE:
            if amount is None:
                raise ValidationError("Amount is required for capturePayment")
            return await self.capture_payment(payment, amount)
        if action.action == PaymentIntentActionType.REFUND:
            if amount is None:
                raise ValidationError("Amount is required for refundPayment")
            return await self.refund_payment(payment, amount)
        if action.action == PaymentIntentActionType.CANCEL:
            return await self.cancel_payment(payment)
        return await self.reverse_payment(payment)


_service: Optional[BriqpayPaymentService] = None


def get_payment_service() -> BriqpayPaymentService:
    global _service
    if _service is None:
        _service = BriqpayPaymentService()
    return _service
