# module processor.commercetools.carts
"""
Accès aux carts commercetools.
- Lecture (par id, par paiement rattaché, par id de session Briqpay)
- Montant à payer (taxedPrice.totalGross, sinon totalPrice)
- Actions de mise à jour versionnées (setCustomType, setCustomField, addPayment)
"""
import logging
from typing import Any, Dict, List

from processor.errors import PlatformError, RESOURCE_NOT_FOUND
from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)


async def get_cart(cart_id: str) -> Dict[str, Any]:
    return await ct.get_commercetools_client().get(f"/carts/{cart_id}")


async def _find_one(where: str, what: str) -> Dict[str, Any]:
    res = await ct.get_commercetools_client().get("/carts", params={"where": where, "limit": 1})
    results = res.get("results") or []
    if not results:
        raise PlatformError(f"Cart not found for {what}", 404, RESOURCE_NOT_FOUND)
    return results[0]


async def get_cart_by_payment_id(payment_id: str) -> Dict[str, Any]:
    return await _find_one(f'paymentInfo(payments(id="{payment_id}"))', f"payment {payment_id}")


async def find_cart_by_custom_field(field_name: str, value: str) -> Dict[str, Any]:
    return await _find_one(f'custom(fields({field_name}="{value}"))', f"{field_name}={value}")


def get_payment_amount(cart: Dict[str, Any]) -> Dict[str, Any]:
    """Montant brut à payer: taxedPrice.totalGross si le cart est taxé, sinon totalPrice."""
    total = cart.get("totalPrice") or {}
    gross = ((cart.get("taxedPrice") or {}).get("totalGross") or {}).get("centAmount")
    return {
        "centAmount": gross if gross is not None else total.get("centAmount", 0),
        "currencyCode": total.get("currencyCode"),
        "fractionDigits": total.get("fractionDigits", 2),
    }


async def update_cart(cart_id: str, version: int, actions: List[Dict[str, Any]]) -> Dict[str, Any]:
    logger.info("cart update id=%s version=%s actions=%s", cart_id, version, [a.get("action") for a in actions])
    return await ct.get_commercetools_client().post(f"/carts/{cart_id}", {"version": version, "actions": actions})


async def set_custom_type(cart: Dict[str, Any], type_id: str) -> Dict[str, Any]:
    return await update_cart(
        cart["id"],
        cart["version"],
        [{"action": "setCustomType", "type": {"typeId": "type", "id": type_id}}],
    )


async def set_custom_field(cart: Dict[str, Any], name: str, value: Any) -> Dict[str, Any]:
    return await update_cart(cart["id"], cart["version"], [{"action": "setCustomField", "name": name, "value": value}])


async def add_payment(cart: Dict[str, Any], payment_id: str) -> Dict[str, Any]:
    return await update_cart(
        cart["id"],
        cart["version"],
        [{"action": "addPayment", "payment": {"typeId": "payment", "id": payment_id}}],
    )
