"""
Module 'briqpay' (feature-first): point d'entrée public.
Réunit mapping du cart, réconciliation de session, opérations, webhooks et service.
"""

from .cart import build_cart_items, build_order_data, map_cart, map_line_item
from .notifications import NotificationService
from .operations import OperationService
from .service import BriqpayPaymentService, PaymentService, get_payment_service
from .session import SessionService
from .session_data import SessionDataService, extract_custom_fields
from .webhook_verification import ReplayCache, VerificationResult, replay_cache, verify

__all__ = [
    # cart
    "build_cart_items",
    "build_order_data",
    "map_cart",
    "map_line_item",
    # session
    "SessionService",
    "SessionDataService",
    "extract_custom_fields",
    # opérations et webhooks
    "OperationService",
    "NotificationService",
    "ReplayCache",
    "VerificationResult",
    "replay_cache",
    "verify",
    # service
    "PaymentService",
    "BriqpayPaymentService",
    "get_payment_service",
]
