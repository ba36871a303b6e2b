import copy
import itertools
import json
import os
import re
from typing import Any, Dict, Generator, List, Optional

# Avant tout import de l'app: pas de validation d'env ni de redis en tests
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import httpx
import pytest
from fastapi.testclient import TestClient

from processor.briqpay import webhook_verification
from processor.errors import PlatformError, RESOURCE_NOT_FOUND
from processor.infra import briqpay_client, commercetools_client as ct


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


# --- Données de test ---

def make_cart(**overrides) -> Dict[str, Any]:
    """Cart taxé: une ligne physique, quantité 2, 50,00 TTC l'unité, TVA 20%."""
    cart = {
        "id": "cart-1",
        "version": 1,
        "locale": "en-GB",
        "country": "SE",
        "customerId": "customer-1",
        "totalPrice": {"centAmount": 10000, "currencyCode": "SEK", "fractionDigits": 2},
        "taxedPrice": {
            "totalGross": {"centAmount": 10000, "currencyCode": "SEK"},
            "totalNet": {"centAmount": 8333, "currencyCode": "SEK"},
        },
        "lineItems": [
            {
                "id": "li-1",
                "productId": "prod-1",
                "name": {"en-GB": "Running shoe"},
                "quantity": 2,
                "price": {"value": {"centAmount": 5000, "currencyCode": "SEK"}},
                "totalPrice": {"centAmount": 10000, "currencyCode": "SEK"},
                "taxRate": {"amount": 0.2},
                "variant": {"images": [{"url": "https://img.example.com/shoe.png"}]},
            }
        ],
        "shippingAddress": {"country": "SE", "city": "Stockholm", "firstName": "Ada", "email": "ada@example.com"},
        "billingAddress": {"country": "SE", "city": "Stockholm", "firstName": "Ada", "email": "ada@example.com"},
    }
    cart.update(overrides)
    return cart


# --- Double commercetools (API projet en mémoire) ---

class FakeCommercetools:
    """Même interface que CommercetoolsClient; versions vérifiées comme sur l'API réelle."""

    def __init__(self):
        self.carts: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.tax_categories: Dict[str, Dict[str, Any]] = {}
        self.types: List[Dict[str, Any]] = [{"id": "type-1", "key": "briqpay-session-id"}]
        self.cart_discounts: List[Dict[str, Any]] = []
        self.checkout_sessions: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def add_cart(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        self.carts[cart["id"]] = copy.deepcopy(cart)
        return cart

    def add_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        payment = {"version": 1, "transactions": [], **payment}
        self.payments[payment["id"]] = copy.deepcopy(payment)
        return payment

    def payment_actions(self, payment_id: str) -> List[str]:
        return [a["action"] for u in self.updates if u["path"] == f"/payments/{payment_id}" for a in u["actions"]]

    def _store(self, kind: str) -> Dict[str, Dict[str, Any]]:
        return {
            "carts": self.carts,
            "payments": self.payments,
            "orders": self.orders,
            "product-projections": self.products,
            "tax-categories": self.tax_categories,
        }[kind]

    @staticmethod
    def _not_found(path: str):
        raise PlatformError(f"{path}: resource not found", 404, RESOURCE_NOT_FOUND)

    def _by_id(self, store: Dict[str, Dict[str, Any]], path: str, resource_id: str) -> Dict[str, Any]:
        if resource_id not in store:
            self._not_found(path)
        return copy.deepcopy(store[resource_id])

    @staticmethod
    def _has_payment(resource: Dict[str, Any], payment_id: str) -> bool:
        refs = (resource.get("paymentInfo") or {}).get("payments") or []
        return any(r.get("id") == payment_id for r in refs)

    def _query(self, store: Dict[str, Dict[str, Any]], where: str) -> Dict[str, Any]:
        m = re.match(r'paymentInfo\(payments\(id="([^"]+)"\)\)', where)
        if m:
            results = [r for r in store.values() if self._has_payment(r, m.group(1))]
        else:
            m = re.match(r'custom\(fields\((\w+)="([^"]+)"\)\)', where)
            if m:
                results = [
                    r for r in store.values()
                    if ((r.get("custom") or {}).get("fields") or {}).get(m.group(1)) == m.group(2)
                ]
            else:
                m = re.match(r'interfaceId="([^"]+)"', where)
                results = [r for r in store.values() if m and r.get("interfaceId") == m.group(1)]
        return {"results": copy.deepcopy(results)}

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        where = (params or {}).get("where", "")
        if path == "":
            return {"key": "test-project"}
        if path == "/types":
            return {"results": copy.deepcopy(self.types)}
        if path == "/cart-discounts":
            return {"results": copy.deepcopy(self.cart_discounts)}
        kind, _, resource_id = path.strip("/").partition("/")
        store = self._store(kind)
        if resource_id:
            return self._by_id(store, path, resource_id)
        return self._query(store, where)

    async def post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if path == "/payments":
            payment = {"id": f"pay-{next(self._ids)}", "version": 1, "transactions": [], **copy.deepcopy(body)}
            self.payments[payment["id"]] = payment
            return copy.deepcopy(payment)

        kind, _, resource_id = path.strip("/").partition("/")
        store = self._store(kind)
        if resource_id not in store:
            self._not_found(path)
        resource = store[resource_id]
        if body["version"] != resource["version"]:
            raise PlatformError("Version mismatch", 409, "ConcurrentModification")
        self.updates.append({"path": path, "actions": copy.deepcopy(body["actions"])})
        for action in body["actions"]:
            self._apply(resource, action)
        resource["version"] += 1
        return copy.deepcopy(resource)

    def _apply(self, resource: Dict[str, Any], action: Dict[str, Any]) -> None:
        name = action["action"]
        if name == "setCustomType":
            resource["custom"] = {"type": action["type"], "fields": {}}
        elif name == "setCustomField":
            resource.setdefault("custom", {"fields": {}})["fields"][action["name"]] = action["value"]
        elif name == "addPayment":
            resource.setdefault("paymentInfo", {"payments": []})["payments"].append(action["payment"])
        elif name == "setInterfaceId":
            resource["interfaceId"] = action["interfaceId"]
        elif name == "setMethodInfoMethod":
            resource.setdefault("paymentMethodInfo", {})["method"] = action["method"]
        elif name == "addTransaction":
            resource["transactions"].append({"id": f"tx-{next(self._ids)}", **action["transaction"]})
        elif name == "changeTransactionState":
            for tx in resource["transactions"]:
                if tx["id"] == action["transactionId"]:
                    tx["state"] = action["state"]
        else:
            raise AssertionError(f"unexpected update action {name}")

    async def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.checkout_sessions:
            self._not_found(f"/sessions/{session_id}")
        return copy.deepcopy(self.checkout_sessions[session_id])

    async def introspect_token(self, token: str) -> Dict[str, Any]:
        return copy.deepcopy(self.tokens.get(token, {"active": False}))

    async def aclose(self) -> None:
        return None


# --- Double Briqpay (httpx.MockTransport) ---

class FakeBriqpay:
    """API Briqpay v3 minimale: sessions, capture, refund, cancel, decision."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, int] = {}
        self.capture_status = "approved"
        self.refund_status = "approved"
        self._ids = itertools.count(1)

    def calls(self, method: str, suffix: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    def _session_view(self, session_id: str) -> Dict[str, Any]:
        return copy.deepcopy(self.sessions[session_id])

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for key, status in self.fail.items():
            if request.method == key.split(" ")[0] and path.endswith(key.split(" ", 1)[1]):
                return httpx.Response(status, json={"error": "forced failure"})

        m = re.search(r"/session/([^/]+)(/.*)?$", path)
        if request.method == "POST" and path.endswith("/session"):
            session_id = f"bq-session-{next(self._ids)}"
            body = json.loads(request.content)
            self.sessions[session_id] = {
                "sessionId": session_id,
                "htmlSnippet": f"<div id='{session_id}'></div>",
                "data": body.get("data") or {},
            }
            return httpx.Response(200, json=self._session_view(session_id))
        if not m:
            return httpx.Response(200, json={"ok": True})

        session_id, tail = m.group(1), m.group(2) or ""
        if session_id not in self.sessions:
            return httpx.Response(404, json={"error": "session not found"})
        session = self.sessions[session_id]
        if request.method == "GET":
            return httpx.Response(200, json=self._session_view(session_id))
        if request.method == "PATCH":
            session["data"] = {**session.get("data", {}), **json.loads(request.content).get("data", {})}
            return httpx.Response(200, json=self._session_view(session_id))
        if tail == "/order/capture":
            capture_id = f"capture-{next(self._ids)}"
            session.setdefault("captures", []).append({"captureId": capture_id, "status": self.capture_status})
            return httpx.Response(200, json={"captureId": capture_id, "status": self.capture_status})
        if tail == "/order/refund":
            refund_id = f"refund-{next(self._ids)}"
            session.setdefault("refunds", []).append({"refundId": refund_id, "status": self.refund_status})
            return httpx.Response(200, json={"refundId": refund_id, "status": self.refund_status})
        if tail in ("/order/cancel", "/decision"):
            return httpx.Response(204)
        return httpx.Response(404, json={"error": "unknown route"})


@pytest.fixture
def fake_ct() -> Generator[FakeCommercetools, None, None]:
    fake = FakeCommercetools()
    ct.set_commercetools_client(fake)
    yield fake
    ct.set_commercetools_client(None)


@pytest.fixture
def fake_briqpay() -> Generator[FakeBriqpay, None, None]:
    fake = FakeBriqpay()
    briqpay_client.set_briqpay_client(briqpay_client.build_briqpay_client(transport=httpx.MockTransport(fake.handler)))
    yield fake
    briqpay_client.set_briqpay_client(None)


@pytest.fixture(autouse=True)
def _clear_replay_cache():
    webhook_verification.replay_cache.clear()
    yield
    webhook_verification.replay_cache.clear()


@pytest.fixture
def app(fake_ct, fake_briqpay):
    from processor.app import app as fastapi_app
    from processor.briqpay import service as service_module

    # un service neuf par test (résolveur de type non partagé)
    service_module._service = None
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    service_module._service = None


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def cart_factory():
    return make_cart
