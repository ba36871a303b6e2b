# module processor.commercetools.payments
"""
Accès aux paiements commercetools et à leurs transactions.
- update_payment est idempotent par (type, interactionId):
  - aucune transaction correspondante -> addTransaction
  - transaction existante dans un autre état -> changeTransactionState
  - transaction existante dans le même état -> aucune écriture
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)


async def get_payment(payment_id: str) -> Dict[str, Any]:
    return await ct.get_commercetools_client().get(f"/payments/{payment_id}")


async def find_payments_by_interface_id(interface_id: str) -> List[Dict[str, Any]]:
    res = await ct.get_commercetools_client().get("/payments", params={"where": f'interfaceId="{interface_id}"'})
    return res.get("results") or []


async def create_payment(draft: Dict[str, Any]) -> Dict[str, Any]:
    payment = await ct.get_commercetools_client().post("/payments", draft)
    logger.info("payment created id=%s", payment.get("id"))
    return payment


def find_transaction(
    payment: Optional[Dict[str, Any]],
    tx_type: str,
    interaction_id: Optional[str] = None,
    states: Optional[Iterable[str]] = None,
) -> Optional[Dict[str, Any]]:
    """Première transaction du type donné (interactionId et états optionnels)."""
    wanted = set(states) if states is not None else None
    for tx in (payment or {}).get("transactions") or []:
        if tx.get("type") != tx_type:
            continue
        if interaction_id is not None and tx.get("interactionId") != interaction_id:
            continue
        if wanted is not None and tx.get("state") not in wanted:
            continue
        return tx
    return None


def has_transaction_in_state(payment: Dict[str, Any], tx_type: str, states: Iterable[str]) -> bool:
    return find_transaction(payment, tx_type, states=states) is not None


async def update_payment(
    payment_id: str,
    transaction: Optional[Dict[str, Any]] = None,
    psp_reference: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Met à jour un paiement à sa version courante.
    - transaction: {type, amount, state, interactionId?}
    - psp_reference: devient l'interfaceId du paiement
    - payment_method: méthode affichée (ex: "briqpay")
    """
    payment = await get_payment(payment_id)
    actions: List[Dict[str, Any]] = []

    if psp_reference and payment.get("interfaceId") != psp_reference:
        actions.append({"action": "setInterfaceId", "interfaceId": psp_reference})
    if payment_method and (payment.get("paymentMethodInfo") or {}).get("method") != payment_method:
        actions.append({"action": "setMethodInfoMethod", "method": payment_method})

    if transaction:
        existing = None
        for tx in payment.get("transactions") or []:
            if tx.get("type") == transaction["type"] and tx.get("interactionId") == transaction.get("interactionId"):
                existing = tx
                break
        if existing is None:
            draft = {k: v for k, v in transaction.items() if v is not None}
            actions.append({"action": "addTransaction", "transaction": draft})
        elif existing.get("state") != transaction["state"]:
            actions.append({
                "action": "changeTransactionState",
                "transactionId": existing["id"],
                "state": transaction["state"],
            })
        else:
            logger.info(
                "transaction %s/%s already %s on payment %s",
                transaction["type"], transaction.get("interactionId"), existing.get("state"), payment_id,
            )

    if not actions:
        return payment
    return await ct.get_commercetools_client().post(
        f"/payments/{payment_id}", {"version": payment["version"], "actions": actions}
    )
