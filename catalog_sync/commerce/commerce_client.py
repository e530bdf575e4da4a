#===========================================================================
# catalog_sync/commerce/commerce_client.py
# commercetools HTTP API client (destination catalog).
# Client-credentials OAuth; the token is fetched lazily and refreshed once
# when the API answers 401.
#===========================================================================
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from catalog_sync.config import settings
from catalog_sync.errors import CommerceApiError, ConfigurationError
from catalog_sync.logging_filters import summarize_body

logger = logging.getLogger("uvicorn.error")


def _where_parent_code(value: str) -> str:
    return f'masterVariant(attributes(name="akeneo_parent_code" and value={json.dumps(value)}))'


class CommerceClient:
    def __init__(
        self,
        project_key: str = settings.CTP_PROJECT_KEY,
        client_id: str = settings.CTP_CLIENT_ID,
        client_secret: str = settings.CTP_CLIENT_SECRET,
        scope: str = settings.CTP_SCOPE,
        region: str = settings.CTP_REGION,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.project_key = project_key
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self.auth_url = f"https://auth.{region}.commercetools.com/oauth/token"
        self.api_url = f"https://api.{region}.commercetools.com/{project_key}"
        self._http = http or httpx.AsyncClient(timeout=timeout, headers=settings.HTTP_EXTRA_HEADERS)
        self._owns_http = http is None
        self._token: Optional[str] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def authenticate(self) -> str:
        if not (self.project_key and self._client_id and self._client_secret):
            raise ConfigurationError("Missing commercetools credentials (CTP_* settings)")
        data = {"grant_type": "client_credentials"}
        if self._scope:
            data["scope"] = self._scope
        r = await self._http.post(self.auth_url, auth=(self._client_id, self._client_secret), data=data)
        if r.status_code != 200:
            raise CommerceApiError(f"commercetools token request failed: {summarize_body(r.text)}", r.status_code)
        self._token = (r.json() or {}).get("access_token")
        if not self._token:
            raise CommerceApiError("commercetools token response has no access_token", r.status_code)
        return self._token

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        extra_headers = kwargs.pop("headers", None) or {}
        for attempt in (1, 2):
            if not self._token:
                await self.authenticate()
            headers = {**extra_headers, "Authorization": f"Bearer {self._token}"}
            r = await self._http.request(method, url, headers=headers, **kwargs)
            if r.status_code == 401 and attempt == 1:
                logger.info("[CT] token rejected, refreshing")
                self._token = None
                continue
            break

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {}
            message = body.get("message") if isinstance(body, dict) else None
            raise CommerceApiError(
                f"{method} {path} failed: {r.status_code} {message or summarize_body(r.text)}",
                r.status_code,
                body if isinstance(body, dict) else None,
            )
        return r.json() if r.content else {}

    # --- products -----------------------------------------------------------

    async def find_existing(self, uuid: str, parent_code: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Staged projection of the product grouping this item, or None."""
        body = await self._request(
            "GET",
            "/product-projections",
            params={"staged": "true", "where": _where_parent_code(parent_code or uuid)},
        )
        results = body.get("results") or []
        return results[0] if results else None

    async def create_product(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/products", json=draft)

    async def update_product(self, product_id: str, version: int, actions: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._request("POST", f"/products/{product_id}", json={"version": version, "actions": actions})

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/products/{product_id}")

    async def add_product_image(
        self,
        product_id: str,
        data: bytes,
        filename: str,
        extension: str,
        sku: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {"filename": filename, "staged": "true"}
        if sku:
            params["sku"] = sku
        return await self._request(
            "POST",
            f"/products/{product_id}/images",
            params=params,
            content=data,
            headers={"Content-Type": f"image/{extension or 'png'}"},
        )
