from typing import Optional

import httpx

from processor import config

_briqpay: Optional[httpx.AsyncClient] = None


def build_briqpay_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Client httpx pour l'API Briqpay v3.
    - base_url: BRIQPAY_BASE_URL (les chemins "/session/..." s'y ajoutent)
    - Basic auth BRIQPAY_USERNAME / BRIQPAY_SECRET
    """
    return httpx.AsyncClient(
        base_url=config.BRIQPAY_BASE_URL,
        auth=httpx.BasicAuth(config.BRIQPAY_USERNAME, config.BRIQPAY_SECRET),
        headers={"Content-Type": "application/json"},
        timeout=config.BRIQPAY_HTTP_TIMEOUT,
        transport=transport,
    )


def get_briqpay_client() -> httpx.AsyncClient:
    global _briqpay
    if _briqpay is None:
        _briqpay = build_briqpay_client()
    return _briqpay


def set_briqpay_client(client: Optional[httpx.AsyncClient]) -> None:
    global _briqpay
    _briqpay = client


async def close_briqpay_client() -> None:
    global _briqpay
    if _briqpay is not None:
        await _briqpay.aclose()
        _briqpay = None
