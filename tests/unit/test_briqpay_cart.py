import pytest

from processor.briqpay import cart as mapper
from processor.errors import ValidationError


def _line(**overrides):
    line = {
        "id": "li-1",
        "productId": "prod-1",
        "name": {"en-GB": "Running shoe", "sv-SE": "Löparsko"},
        "quantity": 2,
        "price": {"value": {"centAmount": 5000, "currencyCode": "SEK"}},
        "totalPrice": {"centAmount": 10000, "currencyCode": "SEK"},
        "taxRate": {"amount": 0.2},
    }
    line.update(overrides)
    return line


def test_regular_line_amounts():
    [item] = mapper.map_line_item(_line(), "en-GB")
    assert item["productType"] == "physical"
    assert item["reference"] == "li-1"
    assert item["name"] == "Running shoe"
    assert item["quantity"] == 2
    assert item["unitPriceIncVat"] == 5000
    assert item["unitPrice"] == 4167
    assert item["taxRate"] == 2000
    assert item["totalAmount"] == 10000
    assert item["totalVatAmount"] == 1667
    assert item["discountPercentage"] == 0


def test_localized_name_falls_back():
    assert mapper.localized_name(_line(), "sv-SE") == "Löparsko"
    assert mapper.localized_name(_line(name={"en": "Shoe"}), "de-DE") == "Shoe"
    assert mapper.localized_name(_line(name={}, productKey="shoe-key"), "en-GB") == "shoe-key"


def test_digital_product_type():
    line = _line(variant={"attributes": [{"name": "isDigital", "value": True}]})
    assert mapper.map_product_type(line) == "digital"


def test_line_discount_becomes_negative_line():
    line = _line(
        totalPrice={"centAmount": 8000, "currencyCode": "SEK"},
        discountedPricePerQuantity=[
            {"quantity": 2, "discountedPrice": {"includedDiscounts": [{"discount": {"id": "d-1"}}]}}
        ],
    )
    regular, discount = mapper.map_line_item(line, "en-GB", {"d-1": "Summer sale"})

    assert regular["totalAmount"] == 10000
    assert discount["productType"] == "discount"
    assert discount["reference"] == "li-1-discount"
    assert discount["name"] == "Summer sale"
    assert discount["totalAmount"] == -2000
    assert discount["unitPriceIncVat"] == -2000
    assert discount["unitPrice"] == -1667
    assert discount["totalVatAmount"] == -333
    assert regular["totalAmount"] + discount["totalAmount"] == 8000


def test_discount_without_known_name():
    line = _line(totalPrice={"centAmount": 9000, "currencyCode": "SEK"})
    _, discount = mapper.map_line_item(line, "en-GB")
    assert discount["name"] == "Discount"


@pytest.mark.parametrize("gross_total", [9999, 7001, 5000, 1])
def test_discount_sign_and_sum(gross_total):
    line = _line(taxedPrice={"totalGross": {"centAmount": gross_total}})
    items = mapper.map_line_item(line, "en-GB")
    discounts = [i for i in items if i["productType"] == "discount"]
    assert discounts
    assert all(d["totalAmount"] < 0 and d["unitPrice"] < 0 for d in discounts)
    assert sum(i["totalAmount"] for i in items) == gross_total


def test_gift_card_line_is_negative():
    line = _line(lineItemMode="GiftCard", key="gift-1", quantity=1, totalPrice={"centAmount": 2500})
    [item] = mapper.map_line_item(line, "en-GB")
    assert item["productType"] == "discount"
    assert item["reference"] == "gift-1"
    assert item["totalAmount"] == -2500


def test_discount_on_total_price():
    cart = {
        "discountOnTotalPrice": {
            "discountedGrossAmount": {"centAmount": 1200},
            "discountedNetAmount": {"centAmount": 1000},
        }
    }
    [item] = mapper.discount_on_total_lines(cart, 0.2)
    assert item["reference"] == "Discount"
    assert item["totalAmount"] == -1200
    assert item["totalVatAmount"] == -200
    assert item["taxRate"] == 2000


def test_shipping_with_discount():
    cart = {
        "shippingInfo": {
            "price": {"centAmount": 500},
            "taxRate": {"amount": 0.25},
            "discountedPrice": {"value": {"centAmount": 0}},
        }
    }
    shipping, discount = mapper.shipping_lines(cart)
    assert shipping["productType"] == "shipping_fee"
    assert shipping["reference"] == "shippingfee"
    assert shipping["totalAmount"] == 500
    assert shipping["unitPrice"] == 400
    assert discount["reference"] == "shippingfee-discount"
    assert discount["totalAmount"] == -500


def test_free_shipping_has_no_line():
    assert mapper.shipping_lines({"shippingInfo": {"price": {"centAmount": 0}}}) == []


def test_map_address_drops_empty_fields():
    mapped = mapper.map_address({"streetName": "Main st", "postalCode": "11122", "country": "SE", "phone": None})
    assert mapped == {"streetAddress": "Main st", "zip": "11122", "country": "SE"}
    assert mapper.map_address(None) is None


def test_order_data_uses_taxed_net():
    cart = {"taxedPrice": {"totalNet": {"centAmount": 8333}}, "totalPrice": {"currencyCode": "SEK"}}
    order = mapper.build_order_data(cart, {"centAmount": 10000, "currencyCode": "SEK"}, [], 0.2)
    assert order == {"currency": "SEK", "amountIncVat": 10000, "amountExVat": 8333, "cart": []}


@pytest.mark.asyncio
async def test_build_cart_items_new_session_scenario(fake_ct, cart_factory):
    items, rate = await mapper.build_cart_items(cart_factory())
    assert rate == 0.2
    [item] = items
    assert item["productType"] == "physical"
    assert item["quantity"] == 2
    assert item["unitPriceIncVat"] == 5000
    assert item["taxRate"] == 2000
    assert item["totalAmount"] == 10000


@pytest.mark.asyncio
async def test_build_cart_items_resolves_discount_names_once(fake_ct, cart_factory):
    fake_ct.cart_discounts = [{"id": "d-1", "name": {"en-GB": "Summer sale"}}]
    cart = cart_factory()
    cart["lineItems"][0].update(
        totalPrice={"centAmount": 8000, "currencyCode": "SEK"},
        discountedPricePerQuantity=[
            {"quantity": 2, "discountedPrice": {"includedDiscounts": [{"discount": {"id": "d-1"}}]}}
        ],
    )
    items, _ = await mapper.build_cart_items(cart)
    assert [i["name"] for i in items] == ["Running shoe", "Summer sale"]


@pytest.mark.asyncio
async def test_effective_rate_from_tax_category(fake_ct, cart_factory):
    fake_ct.products["prod-1"] = {"id": "prod-1", "taxCategory": {"id": "tc-1"}}
    fake_ct.tax_categories["tc-1"] = {
        "id": "tc-1",
        "rates": [{"country": "DE", "amount": 0.19}, {"country": "SE", "amount": 0.25}],
    }
    cart = cart_factory()
    del cart["lineItems"][0]["taxRate"]
    assert await mapper.resolve_effective_tax_rate(cart) == 0.25


@pytest.mark.asyncio
async def test_effective_rate_never_guessed(fake_ct, cart_factory):
    cart = cart_factory(lineItems=[])
    with pytest.raises(ValidationError):
        await mapper.resolve_effective_tax_rate(cart)
