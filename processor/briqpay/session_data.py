# module processor.briqpay.session_data
"""
Report des données de session Briqpay dans les champs personnalisés d'une commande.
- pspMetadata et première transaction -> noms de champs configurés (processor.config)
- seules les valeurs non vides sont écrites
- idempotent: réécrire les mêmes valeurs ne change rien côté métier
"""
import logging
from typing import Any, Dict

from processor import config
from processor.briqpay import provider
from processor.briqpay.status import get_primary_transaction
from processor.commercetools import orders
from processor.commercetools.custom_types import CustomTypeResolver

logger = logging.getLogger(__name__)


def _set_if_present(out: Dict[str, str], field: str, value: Any) -> None:
    if isinstance(value, str) and value.strip():
        out[field] = value


def extract_custom_fields(session: Dict[str, Any]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    psp_metadata = ((session or {}).get("data") or {}).get("pspMetadata") or {}
    for source, field in config.PSP_META_DATA_FIELDS.items():
        _set_if_present(result, field, psp_metadata.get(source))

    transaction = get_primary_transaction(session) or {}
    for source, field in config.TRANSACTION_DATA_FIELDS.items():
        _set_if_present(result, field, transaction.get(source))
    return result


class SessionDataService:
    def __init__(self, custom_types: CustomTypeResolver):
        self.custom_types = custom_types

    async def update_order_custom_fields(self, order_id: str, fields: Dict[str, str]) -> None:
        if not fields:
            logger.info("no session data to write on order %s", order_id)
            return
        order = await orders.get_order(order_id)
        version = order["version"]
        if not order.get("custom"):
            logger.info("setting custom type on order %s", order_id)
            typed = await orders.update_order(
                order_id,
                version,
                [{"action": "setCustomType", "type": {"typeId": "type", "id": await self.custom_types.type_id()}}],
            )
            version = typed["version"]
        actions = [{"action": "setCustomField", "name": name, "value": value} for name, value in fields.items()]
        await orders.update_order(order_id, version, actions)
        logger.info("order %s updated with session fields %s", order_id, sorted(fields))

    async def ingest_session_data_to_order(self, session_id: str, order_id: str) -> Dict[str, str]:
        session = await provider.get_full_session(session_id)
        fields = extract_custom_fields(session)
        await self.update_order_custom_fields(order_id, fields)
        return fields

    async def ingest_for_payment(self, session_id: str, payment_id: str) -> None:
        """Best effort: une erreur est journalisée, jamais propagée."""
        try:
            order = await orders.find_order_by_payment_id(payment_id)
            if not order:
                logger.info("no order yet for payment %s, session data not ingested", payment_id)
                return
            await self.ingest_session_data_to_order(session_id, order["id"])
        except Exception:
            logger.exception("Failed to ingest Briqpay session data session=%s payment=%s", session_id, payment_id)
