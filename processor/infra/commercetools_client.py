"""
Client HTTP commercetools (httpx, asynchrone).
- Jeton OAuth client_credentials mis en cache jusqu'à expiration
- Erreurs API -> PlatformError (code ResourceNotFound sur 404, sinon premier code d'erreur renvoyé)
- Accès aux sessions checkout et à l'introspection des jetons opérateur
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from processor import config
from processor.errors import PlatformError, RESOURCE_NOT_FOUND

logger = logging.getLogger(__name__)

# marge avant expiration du jeton (secondes)
_TOKEN_LEEWAY = 60


class CommercetoolsClient:
    def __init__(
        self,
        project_key: str,
        client_id: str,
        client_secret: str,
        auth_url: str,
        api_url: str,
        session_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_key = project_key
        self.auth_url = auth_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.session_url = session_url.rstrip("/")
        self._auth = httpx.BasicAuth(client_id, client_secret)
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _access_token(self) -> str:
        now = time.monotonic()
        if self._token and now < self._token_expires_at:
            return self._token
        resp = await self._http.post(
            f"{self.auth_url}/oauth/token",
            data={"grant_type": "client_credentials"},
            auth=self._auth,
        )
        if resp.status_code != 200:
            logger.error("commercetools token request failed status=%s body=%s", resp.status_code, resp.text)
            raise PlatformError("commercetools authentication failed", 502, "AUTHENTICATION_FAILED")
        payload = resp.json()
        self._token = payload["access_token"]
        self._token_expires_at = now + max(int(payload.get("expires_in", 0)) - _TOKEN_LEEWAY, 0)
        return self._token

    @staticmethod
    def _raise_for_status(resp: httpx.Response, what: str) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {"message": resp.text}
        if resp.status_code == 404:
            raise PlatformError(f"{what}: resource not found", 404, RESOURCE_NOT_FOUND, body)
        errors = body.get("errors") or []
        code = (errors[0].get("code") if errors else None) or "PLATFORM_ERROR"
        message = body.get("message") or f"{what} failed with status {resp.status_code}"
        logger.error("commercetools %s failed status=%s code=%s body=%s", what, resp.status_code, code, body)
        raise PlatformError(message, 502 if resp.status_code >= 500 else resp.status_code, code, body)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Appel de l'API projet: path relatif à /{projectKey} (ex: "/carts/123")."""
        token = await self._access_token()
        resp = await self._http.request(
            method,
            f"{self.api_url}/{self.project_key}{path}",
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {token}"},
        )
        self._raise_for_status(resp, f"{method} {path}")
        return resp.json()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", path, json=body)

    async def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        token = await self._access_token()
        resp = await self._http.get(
            f"{self.session_url}/{self.project_key}/sessions/{session_id}",
            headers={"Authorization": f"Bearer {token}"},
        )
        self._raise_for_status(resp, "GET session")
        return resp.json()

    async def introspect_token(self, token: str) -> Dict[str, Any]:
        resp = await self._http.post(
            f"{self.auth_url}/oauth/introspect",
            data={"token": token},
            auth=self._auth,
        )
        self._raise_for_status(resp, "token introspection")
        return resp.json()

    async def aclose(self) -> None:
        await self._http.aclose()


_client: Optional[CommercetoolsClient] = None


def get_commercetools_client() -> CommercetoolsClient:
    global _client
    if _client is None:
        _client = CommercetoolsClient(
            project_key=config.CTP_PROJECT_KEY,
            client_id=config.CTP_CLIENT_ID,
            client_secret=config.CTP_CLIENT_SECRET,
            auth_url=config.CTP_AUTH_URL,
            api_url=config.CTP_API_URL,
            session_url=config.CTP_SESSION_URL,
        )
    return _client


def set_commercetools_client(client: Optional[CommercetoolsClient]) -> None:
    """Remplace l'instance partagée (tests, reconfiguration)."""
    global _client
    _client = client


async def close_commercetools_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
