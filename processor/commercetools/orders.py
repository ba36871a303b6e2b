# module processor.commercetools.orders
from typing import Any, Dict, List, Optional

from processor.infra import commercetools_client as ct


async def get_order(order_id: str) -> Dict[str, Any]:
    return await ct.get_commercetools_client().get(f"/orders/{order_id}")


async def find_order_by_payment_id(payment_id: str) -> Optional[Dict[str, Any]]:
    """Commande contenant ce paiement, ou None si elle n'est pas encore créée."""
    res = await ct.get_commercetools_client().get(
        "/orders", params={"where": f'paymentInfo(payments(id="{payment_id}"))', "limit": 1}
    )
    results = res.get("results") or []
    return results[0] if results else None


async def update_order(order_id: str, version: int, actions: List[Dict[str, Any]]) -> Dict[str, Any]:
    return await ct.get_commercetools_client().post(f"/orders/{order_id}", {"version": version, "actions": actions})
