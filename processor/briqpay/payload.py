# module processor.briqpay.payload
"""
Corps de requête des sessions Briqpay.
- build_session_body: création (produit, hooks, références, adresses, commande)
- build_update_body: PATCH d'une session existante (commande et adresses)
- build_confirmation_url: origine du client uniquement en développement local
"""
import ipaddress
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from processor import config
from processor.briqpay.cart import DEFAULT_LOCALE, build_order_data, map_address
from processor.briqpay.status import WebhookEvent, WebhookStatus

logger = logging.getLogger(__name__)

_ORDER_HOOK_STATUSES = [
    WebhookStatus.ORDER_PENDING.value,
    WebhookStatus.ORDER_REJECTED.value,
    WebhookStatus.ORDER_CANCELLED.value,
    WebhookStatus.ORDER_APPROVED_NOT_CAPTURED.value,
]
_TRANSACTION_HOOK_STATUSES = [
    WebhookStatus.PENDING.value,
    WebhookStatus.APPROVED.value,
    WebhookStatus.REJECTED.value,
]


def is_local_development_origin(origin: Optional[str]) -> bool:
    """localhost, boucle locale (127.x, ::1) ou réseau privé IPv4 (10/8, 192.168/16, 172.16/12)."""
    if not origin:
        return False
    try:
        hostname = (urlsplit(origin).hostname or "").lower()
    except ValueError:
        return False
    if hostname == "localhost":
        return True
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    if ip.is_loopback:
        return True
    if ip.version == 4:
        return any(ip in ipaddress.ip_network(n) for n in ("10.0.0.0/8", "192.168.0.0/16", "172.16.0.0/12"))
    return False


def build_confirmation_url(client_origin: Optional[str] = None) -> str:
    env_url = config.BRIQPAY_CONFIRMATION_URL
    if not is_local_development_origin(client_origin):
        return env_url
    try:
        env_parts = urlsplit(env_url)
        origin_parts = urlsplit(client_origin)
        path = env_parts.path
        if env_parts.query:
            path += f"?{env_parts.query}"
        if env_parts.fragment:
            path += f"#{env_parts.fragment}"
        url = f"{origin_parts.scheme}://{origin_parts.netloc}{path}"
    except ValueError:
        logger.warning("Origine client invalide %r, utilisation de BRIQPAY_CONFIRMATION_URL", client_origin)
        return env_url
    logger.info("confirmation url for local development: %s", url)
    return url


def hook_url(hostname: str) -> str:
    base = f"https://{hostname}"
    return base + ("notifications" if base.endswith("/") else "/notifications")


def _hooks(url: str) -> List[Dict[str, Any]]:
    return [
        {"eventType": WebhookEvent.ORDER_STATUS.value, "statuses": _ORDER_HOOK_STATUSES, "method": "POST", "url": url},
        {"eventType": WebhookEvent.CAPTURE_STATUS.value, "statuses": _TRANSACTION_HOOK_STATUSES, "method": "POST", "url": url},
        {"eventType": WebhookEvent.REFUND_STATUS.value, "statuses": _TRANSACTION_HOOK_STATUSES, "method": "POST", "url": url},
    ]


def _addresses(cart: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    billing = map_address(cart.get("billingAddress"))
    shipping = map_address(cart.get("shippingAddress") or cart.get("billingAddress"))
    if billing:
        out["billing"] = billing
    if shipping:
        out["shipping"] = shipping
    return out


def build_session_body(
    cart: Dict[str, Any],
    amount: Dict[str, Any],
    cart_items: List[Dict[str, Any]],
    effective_tax_rate: Any,
    hostname: str,
    future_order_number: Optional[str] = None,
    client_origin: Optional[str] = None,
) -> Dict[str, Any]:
    references = {"cartId": cart["id"]}
    if future_order_number:
        references["reference1"] = future_order_number
    data = _addresses(cart)
    data["order"] = build_order_data(cart, amount, cart_items, effective_tax_rate)
    return {
        "product": {"type": "payment", "intent": "payment_one_time"},
        "customerType": "consumer",
        "country": cart.get("country"),
        "locale": cart.get("locale") or DEFAULT_LOCALE,
        "urls": {"terms": config.BRIQPAY_TERMS_URL, "redirect": build_confirmation_url(client_origin)},
        "hooks": _hooks(hook_url(hostname)),
        "references": references,
        "data": data,
        "modules": {"loadModules": ["payment"]},
    }


def build_update_body(
    cart: Dict[str, Any],
    amount: Dict[str, Any],
    cart_items: List[Dict[str, Any]],
    effective_tax_rate: Any,
) -> Dict[str, Any]:
    data = _addresses(cart)
    data["order"] = build_order_data(cart, amount, cart_items, effective_tax_rate)
    return {"data": data}
