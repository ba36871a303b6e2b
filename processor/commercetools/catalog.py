# module processor.commercetools.catalog
"""Catalogue: catégories de taxe, projections produit et noms des cart discounts."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)


async def get_tax_category(tax_category_id: str) -> Dict[str, Any]:
    return await ct.get_commercetools_client().get(f"/tax-categories/{tax_category_id}")


async def get_product_projection(product_id: str) -> Dict[str, Any]:
    return await ct.get_commercetools_client().get(f"/product-projections/{product_id}")


def pick_localized(value: Optional[Dict[str, str]], locale: str) -> Optional[str]:
    if not value:
        return None
    return value.get(locale) or value.get("en") or next(iter(value.values()), None)


async def get_cart_discount_names(discount_ids: Iterable[str], locale: str) -> Dict[str, str]:
    """
    Noms affichables des cart discounts, en une seule requête.
    Retour: {discount_id: nom}; les ids sans nom exploitable sont absents.
    """
    ids: List[str] = sorted(set(i for i in discount_ids if i))
    if not ids:
        return {}
    quoted = ", ".join(f'"{i}"' for i in ids)
    res = await ct.get_commercetools_client().get(
        "/cart-discounts", params={"where": f"id in ({quoted})", "limit": len(ids)}
    )
    names: Dict[str, str] = {}
    for discount in res.get("results") or []:
        name = pick_localized(discount.get("name"), locale) or discount.get("key")
        if name:
            names[discount["id"]] = name
    logger.info("cart discount names resolved=%s/%s", len(names), len(ids))
    return names
