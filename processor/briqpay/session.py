"""
Réconciliation cart commercetools <-> session Briqpay.

Machine à états:
- pas d'id de session sur le cart -> création
- id présent -> lecture de la session puis comparaison structurelle
  - identique -> réutilisation, aucune écriture distante
  - différente -> PATCH; si le PATCH échoue -> création
- toute erreur de lecture/comparaison -> création
- échec de la création de secours -> SessionError
La création sert toujours de filet: une session abandonnée coûte moins qu'un checkout bloqué.
"""
import logging
from typing import Any, Dict, List, Optional

from processor import config
from processor.briqpay import provider
from processor.briqpay.cart import ProductType, build_cart_items
from processor.briqpay.payload import build_session_body, build_update_body
from processor.commercetools import carts
from processor.commercetools.custom_types import CustomTypeResolver
from processor.errors import BriqpayError, SessionError, ValidationError

logger = logging.getLogger(__name__)

_MATCH_FIELDS = ("name", "quantity", "unitPrice", "taxRate", "reference")


def _items_match(expected: Dict[str, Any], actual: Dict[str, Any]) -> bool:
    if ProductType.SALES_TAX in (expected.get("productType"), actual.get("productType")):
        return (
            expected.get("name") == actual.get("name")
            and expected.get("reference") == actual.get("reference")
            and expected.get("totalTaxAmount", expected.get("totalVatAmount"))
            == actual.get("totalTaxAmount", actual.get("totalVatAmount"))
        )
    return all(expected.get(f) == actual.get(f) for f in _MATCH_FIELDS)


class SessionService:
    def __init__(self, custom_types: CustomTypeResolver, session_field: str = config.BRIQPAY_SESSION_ID_FIELD):
        self.custom_types = custom_types
        self.session_field = session_field

    def stored_session_id(self, cart: Dict[str, Any]) -> Optional[str]:
        return ((cart.get("custom") or {}).get("fields") or {}).get(self.session_field)

    async def create_or_update_session(
        self,
        cart: Dict[str, Any],
        amount: Dict[str, Any],
        hostname: str,
        future_order_number: Optional[str] = None,
        client_origin: Optional[str] = None,
    ) -> Dict[str, Any]:
        existing_id = self.stored_session_id(cart)
        logger.info("reconcile cart=%s existing_session=%s", cart.get("id"), existing_id)
        try:
            if existing_id:
                return await self._manage_existing(cart, amount, hostname, existing_id, future_order_number, client_origin)
            session = await self._create(cart, amount, hostname, future_order_number, client_origin)
            logger.info("created session %s", session.get("sessionId"))
            return session
        except Exception as e:
            logger.error("Session operation failed, creating new session: %s", e)
            try:
                session = await self._create(cart, amount, hostname, future_order_number, client_origin)
            except Exception:
                logger.exception("Failed to create Briqpay session cart=%s", cart.get("id"))
                raise SessionError("Failed to create Briqpay payment session")
            logger.info("created session %s after error", session.get("sessionId"))
            return session

    async def _create(
        self,
        cart: Dict[str, Any],
        amount: Dict[str, Any],
        hostname: str,
        future_order_number: Optional[str],
        client_origin: Optional[str],
    ) -> Dict[str, Any]:
        items, rate = await build_cart_items(cart)
        body = build_session_body(cart, amount, items, rate, hostname, future_order_number, client_origin)
        return await provider.create_session(body)

    async def _manage_existing(
        self,
        cart: Dict[str, Any],
        amount: Dict[str, Any],
        hostname: str,
        session_id: str,
        future_order_number: Optional[str],
        client_origin: Optional[str],
    ) -> Dict[str, Any]:
        session = await provider.get_session(session_id)
        if await self.compare_cart_with_session(cart, session, amount):
            logger.info("session %s matches cart %s, reusing", session_id, cart.get("id"))
            return session

        try:
            items, rate = await build_cart_items(cart)
            updated = await provider.update_session(session_id, build_update_body(cart, amount, items, rate))
            logger.info("session %s updated", session_id)
            return updated
        except BriqpayError as e:
            logger.error("Failed to update Briqpay session %s, creating new one: %s", session_id, e.message)
            session = await self._create(cart, amount, hostname, future_order_number, client_origin)
            logger.info("created session %s after update failed", session.get("sessionId"))
            return session

    async def compare_cart_with_session(
        self,
        cart: Dict[str, Any],
        session: Dict[str, Any],
        amount: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        True si la session reflète exactement le cart:
        - même montant TTC (data.order.amountIncVat)
        - même nombre de lignes, et chaque ligne attendue trouvée (name, quantity, unitPrice, taxRate, reference)
        - les lignes sales_tax se comparent sur totalTaxAmount
        """
        amount = amount or carts.get_payment_amount(cart)
        order = (session.get("data") or {}).get("order") or {}
        if order.get("amountIncVat") != amount["centAmount"]:
            logger.info("amount mismatch session=%s cart=%s", order.get("amountIncVat"), amount["centAmount"])
            return False

        if not cart.get("locale"):
            raise ValidationError("Cart is missing locale, cannot compare sessions accurately.")

        expected, _ = await build_cart_items(cart)
        actual: List[Dict[str, Any]] = order.get("cart") or []
        if len(expected) != len(actual):
            logger.info("line count mismatch session=%s cart=%s", len(actual), len(expected))
            return False

        # une ligne de session ne peut correspondre qu'à une seule ligne attendue
        remaining = list(actual)
        for line in expected:
            index = next((i for i, candidate in enumerate(remaining) if _items_match(line, candidate)), None)
            if index is None:
                logger.info("no session line matches reference=%s", line.get("reference"))
                return False
            del remaining[index]
        return True

    async def update_cart_with_session_id(self, cart: Dict[str, Any], session_id: str) -> Dict[str, Any]:
        """
        Enregistre l'id de session dans le champ personnalisé du cart.
        - pose d'abord le type personnalisé si le cart n'en a pas
        - aucune écriture si l'id stocké est déjà le bon
        """
        if self.stored_session_id(cart) == session_id:
            return cart
        updated = cart
        if not cart.get("custom"):
            logger.info("setting custom type on cart %s", cart.get("id"))
            updated = await carts.set_custom_type(cart, await self.custom_types.type_id())
        logger.info("storing session %s on cart %s", session_id, cart.get("id"))
        return await carts.set_custom_field(updated, self.session_field, session_id)
