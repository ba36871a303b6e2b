"""
Conversion d'un cart commercetools en lignes de panier Briqpay.

Règles:
- Montants entiers en centimes; taux de taxe en permyriade (taux x 10000).
- net = round(brut / (1 + taux)), TVA = brut - net, arrondi au demi supérieur partout.
- Une ligne classique est émise au prix unitaire ORIGINAL; toute remise devient une ligne
  de remise séparée à montants négatifs, égale à l'écart exact entre total d'origine et total réel.
- Remise sur le total du cart et frais de port suivent la même convention.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from processor.commercetools import catalog
from processor.errors import PlatformError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-GB"
DISCOUNT_NAME = "Discount"
SHIPPING_REFERENCE = "shippingfee"
SHIPPING_NAME = "Shipping fee"
QUANTITY_UNIT = "pc"


class ProductType:
    PHYSICAL = "physical"
    DIGITAL = "digital"
    DISCOUNT = "discount"
    SHIPPING_FEE = "shipping_fee"
    SALES_TAX = "sales_tax"


_ONE = Decimal(1)


def _half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def _rate(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def tax_rate_permyriad(rate: Any) -> int:
    return _half_up(_rate(rate) * 10000)


def net_from_gross(gross: int, rate: Any) -> int:
    return _half_up(Decimal(gross) / (_ONE + _rate(rate)))


def _cents(money: Optional[Dict[str, Any]]) -> Optional[int]:
    if not money:
        return None
    return money.get("centAmount")


def map_product_type(item: Dict[str, Any]) -> str:
    for attr in (item.get("variant") or {}).get("attributes") or []:
        if attr and attr.get("name") == "isDigital" and str(attr.get("value")).lower() == "true":
            return ProductType.DIGITAL
    product_type_id = ((item.get("productType") or {}).get("id") or "").lower()
    if "digital" in product_type_id:
        return ProductType.DIGITAL
    return ProductType.PHYSICAL


def localized_name(item: Dict[str, Any], locale: str) -> str:
    names = item.get("name") or {}
    if names:
        name = names.get(locale) or names.get("en") or next(iter(names.values()), None)
        if name:
            return name
    return item.get("productKey") or item.get("productId") or "Item"


def _image_url(item: Dict[str, Any]) -> Optional[str]:
    images = (item.get("variant") or {}).get("images") or []
    return images[0].get("url") if images else None


def _regular_item(
    product_type: str,
    reference: str,
    name: str,
    quantity: int,
    unit_gross: int,
    rate: Any,
    image_url: Optional[str] = None,
) -> Dict[str, Any]:
    unit_net = net_from_gross(unit_gross, rate)
    total = unit_gross * quantity
    item = {
        "productType": product_type,
        "reference": reference,
        "name": name,
        "quantity": quantity,
        "quantityUnit": QUANTITY_UNIT,
        "unitPrice": unit_net,
        "unitPriceIncVat": unit_gross,
        "taxRate": tax_rate_permyriad(rate),
        "discountPercentage": 0,
        "totalAmount": total,
        "totalVatAmount": total - net_from_gross(total, rate),
    }
    if image_url:
        item["imageUrl"] = image_url
    return item


def _negative_item(reference: str, name: str, gross: int, net: int, tax_rate: int, quantity: int = 1) -> Dict[str, Any]:
    """Ligne de remise: gross/net sont des valeurs positives, la ligne émise est négative."""
    gross, net = abs(gross), abs(net)
    return {
        "productType": ProductType.DISCOUNT,
        "reference": reference,
        "name": name,
        "quantity": quantity,
        "quantityUnit": QUANTITY_UNIT,
        "unitPrice": -_half_up(Decimal(net) / quantity),
        "unitPriceIncVat": -_half_up(Decimal(gross) / quantity),
        "taxRate": tax_rate,
        "discountPercentage": 0,
        "totalAmount": -gross,
        "totalVatAmount": -(gross - net),
    }


def _line_rate(item: Dict[str, Any], fallback_rate: Any) -> Any:
    amount = (item.get("taxRate") or {}).get("amount")
    return amount if amount is not None else (fallback_rate or 0)


def _actual_gross_total(item: Dict[str, Any]) -> int:
    taxed = _cents((item.get("taxedPrice") or {}).get("totalGross"))
    if taxed is not None:
        return taxed
    total = _cents(item.get("totalPrice"))
    if total is not None:
        return total
    return item["price"]["value"]["centAmount"] * item["quantity"]


def _line_discount_ids(item: Dict[str, Any]) -> List[str]:
    ids: List[str] = []
    for dpq in item.get("discountedPricePerQuantity") or []:
        for included in (dpq.get("discountedPrice") or {}).get("includedDiscounts") or []:
            discount_id = (included.get("discount") or {}).get("id")
            if discount_id and discount_id not in ids:
                ids.append(discount_id)
    return ids


def collect_discount_ids(line_items: Iterable[Dict[str, Any]]) -> List[str]:
    """Ids distincts des cart discounts référencés par les lignes (ordre de première apparition)."""
    ids: List[str] = []
    for item in line_items or []:
        for discount_id in _line_discount_ids(item):
            if discount_id not in ids:
                ids.append(discount_id)
    return ids


def _discount_name(item: Dict[str, Any], discount_names: Dict[str, str]) -> str:
    names = [discount_names[i] for i in _line_discount_ids(item) if i in discount_names]
    return ", ".join(names) if names else DISCOUNT_NAME


def map_line_item(
    item: Dict[str, Any],
    locale: str,
    discount_names: Optional[Dict[str, str]] = None,
    fallback_rate: Any = None,
) -> List[Dict[str, Any]]:
    name = localized_name(item, locale)
    rate = _line_rate(item, fallback_rate)
    quantity = item["quantity"]

    if item.get("lineItemMode") == "GiftCard" or item.get("priceMode") == "Discounted":
        gross = abs(_actual_gross_total(item))
        net = _cents((item.get("taxedPrice") or {}).get("totalNet"))
        net = abs(net) if net is not None else net_from_gross(gross, rate)
        line = _negative_item(item.get("key") or item["id"], name, gross, net, tax_rate_permyriad(rate), quantity)
        image_url = _image_url(item)
        if image_url:
            line["imageUrl"] = image_url
        return [line]

    unit_gross = item["price"]["value"]["centAmount"]
    lines = [_regular_item(map_product_type(item), item["id"], name, quantity, unit_gross, rate, _image_url(item))]

    delta = unit_gross * quantity - _actual_gross_total(item)
    if delta > 0:
        lines.append(
            _negative_item(
                f"{item['id']}-discount",
                _discount_name(item, discount_names or {}),
                delta,
                net_from_gross(delta, rate),
                tax_rate_permyriad(rate),
            )
        )
    return lines


def map_cart(
    line_items: Iterable[Dict[str, Any]],
    locale: Optional[str],
    discount_names: Optional[Dict[str, str]] = None,
    fallback_rate: Any = None,
) -> List[Dict[str, Any]]:
    """
    Lignes Briqpay pour les line items, dans l'ordre du cart.
    - discount_names: {discount_id: nom}, issu d'une seule recherche groupée
    - fallback_rate: taux utilisé quand une ligne n'a pas de taxRate
    """
    locale = locale or DEFAULT_LOCALE
    items: List[Dict[str, Any]] = []
    for item in line_items or []:
        items.extend(map_line_item(item, locale, discount_names, fallback_rate))
    return items


def discount_on_total_lines(cart: Dict[str, Any], effective_tax_rate: Any = None) -> List[Dict[str, Any]]:
    discount = cart.get("discountOnTotalPrice") or {}
    gross = _cents(discount.get("discountedGrossAmount"))
    if gross is None:
        gross = _cents(discount.get("discountedAmount"))
    if not gross:
        return []
    gross = abs(gross)
    net = _cents(discount.get("discountedNetAmount"))
    net = abs(net) if net is not None else net_from_gross(gross, effective_tax_rate)
    tax_rate = _half_up(Decimal(gross - net) * 10000 / net) if net else 0
    return [_negative_item(DISCOUNT_NAME, DISCOUNT_NAME, gross, net, tax_rate)]


def shipping_lines(cart: Dict[str, Any], effective_tax_rate: Any = None) -> List[Dict[str, Any]]:
    """Frais de port au prix d'origine, plus une ligne de remise si un prix remisé s'applique."""
    info = cart.get("shippingInfo") or {}
    original = _cents(info.get("price"))
    if not original or original <= 0:
        return []
    rate = (info.get("taxRate") or {}).get("amount")
    if rate is None:
        rate = effective_tax_rate or 0
    lines = [_regular_item(ProductType.SHIPPING_FEE, SHIPPING_REFERENCE, SHIPPING_NAME, 1, original, rate)]

    discounted = _cents((info.get("discountedPrice") or {}).get("value"))
    if discounted is not None and discounted < original:
        delta = original - discounted
        lines.append(
            _negative_item(
                f"{SHIPPING_REFERENCE}-discount",
                "Shipping discount",
                delta,
                net_from_gross(delta, rate),
                tax_rate_permyriad(rate),
            )
        )
    return lines


async def _tax_rate_from_product(product_id: str, country: str, state: Optional[str]) -> Optional[float]:
    try:
        product = await catalog.get_product_projection(product_id)
        tax_category_id = (product.get("taxCategory") or {}).get("id")
        if not tax_category_id:
            return None
        rates = (await catalog.get_tax_category(tax_category_id)).get("rates") or []
    except PlatformError:
        logger.exception("Erreur lecture produit/catégorie de taxe product=%s", product_id)
        return None

    def _first(pred) -> Optional[float]:
        for r in rates:
            if pred(r):
                return r.get("amount")
        return None

    found = _first(lambda r: r.get("country") == country and r.get("state") == state)
    if found is None:
        found = _first(lambda r: r.get("country") == country and not r.get("state"))
    if found is None:
        found = _first(lambda r: r.get("country") == country)
    return found


async def resolve_effective_tax_rate(cart: Dict[str, Any]) -> float:
    """
    Taux effectif du cart, dans l'ordre:
    1) taxRate de la première ligne
    2) catégorie de taxe du produit de la première ligne: (pays, état), (pays, sans état), puis tout taux du pays
    3) taxRate des frais de port
    Sinon ValidationError: la taxe n'est jamais supposée.
    """
    shipping_address = cart.get("shippingAddress") or {}
    country = shipping_address.get("country") or cart.get("country")
    line_items = cart.get("lineItems") or []

    if line_items:
        first = line_items[0]
        amount = (first.get("taxRate") or {}).get("amount")
        if amount:
            return amount
        if first.get("productId") and country:
            rate = await _tax_rate_from_product(first["productId"], country, shipping_address.get("state"))
            if rate is not None:
                return rate

    shipping_rate = ((cart.get("shippingInfo") or {}).get("taxRate") or {}).get("amount")
    if shipping_rate:
        return shipping_rate

    message = f"Could not determine effective tax rate for cart {cart.get('id')}. Country: {country}"
    logger.error(message)
    raise ValidationError(message)


async def build_cart_items(cart: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], float]:
    """
    Lignes complètes d'un cart (articles, remise sur total, frais de port) et taux effectif.
    Les noms de remises sont obtenus en une seule requête pour toutes les lignes.
    """
    locale = cart.get("locale") or DEFAULT_LOCALE
    line_items = cart.get("lineItems") or []
    rate = await resolve_effective_tax_rate(cart)

    discount_names: Dict[str, str] = {}
    discount_ids = collect_discount_ids(line_items)
    if discount_ids:
        try:
            discount_names = await catalog.get_cart_discount_names(discount_ids, locale)
        except PlatformError:
            logger.warning("cart discount names unavailable ids=%s", discount_ids)

    items = map_cart(line_items, locale, discount_names, fallback_rate=rate)
    items.extend(discount_on_total_lines(cart, rate))
    items.extend(shipping_lines(cart, rate))
    logger.info(
        "cart mapped cart=%s lines=%s total=%s",
        cart.get("id"), len(items), sum(i.get("totalAmount", 0) for i in items),
    )
    return items, rate


def map_address(address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not address:
        return None
    mapped = {
        "companyName": address.get("company"),
        "streetAddress": address.get("streetName"),
        "streetAddress2": address.get("additionalStreetInfo"),
        "zip": address.get("postalCode"),
        "city": address.get("city"),
        "region": address.get("region"),
        "firstName": address.get("firstName"),
        "lastName": address.get("lastName"),
        "email": address.get("email"),
        "phoneNumber": address.get("phone"),
        "country": address.get("country"),
    }
    return {k: v for k, v in mapped.items() if v is not None}


def build_order_data(
    cart: Dict[str, Any],
    amount: Dict[str, Any],
    cart_items: List[Dict[str, Any]],
    effective_tax_rate: Any,
) -> Dict[str, Any]:
    amount_inc_vat = amount["centAmount"]
    amount_ex_vat = _cents((cart.get("taxedPrice") or {}).get("totalNet"))
    if amount_ex_vat is None:
        amount_ex_vat = net_from_gross(amount_inc_vat, effective_tax_rate)
    return {
        "currency": amount.get("currencyCode") or (cart.get("totalPrice") or {}).get("currencyCode"),
        "amountIncVat": amount_inc_vat,
        "amountExVat": amount_ex_vat,
        "cart": cart_items,
    }
