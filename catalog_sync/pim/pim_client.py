#===========================================================================
# catalog_sync/pim/pim_client.py
# Akeneo REST API client (source PIM).
# One instance is built at startup and injected; it owns the access token
# and re-authenticates transparently when Akeneo rejects it.
#===========================================================================
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from urllib.parse import parse_qs, quote, urlparse

import httpx

from catalog_sync.config import settings
from catalog_sync.errors import ConfigurationError, PimApiError, PimTokenExpiredError
from catalog_sync.logging_filters import summarize_body
from catalog_sync.models.pim_models import ParentModel, ProductPage, SourceItem

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")

# Re-authenticate at most this many times for a single call
TOKEN_RETRIES = 2


def format_pim_date(dt: datetime) -> str:
    """Akeneo's search filter wants 'YYYY-MM-DD HH:MM:SS' (UTC here)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def build_product_search(
    families: List[str],
    completeness: str,
    scope: str,
    updated_after: Optional[datetime] = None,
) -> Dict[str, Any]:
    search: Dict[str, Any] = {
        "completeness": [{"operator": ">=", "value": _as_number(completeness), "scope": scope}],
        "family": [{"operator": "IN", "value": list(families)}],
    }
    if updated_after is not None:
        search["updated"] = [{"operator": ">", "value": format_pim_date(updated_after)}]
    return search


def _as_number(v: str) -> Any:
    try:
        return int(v)
    except (TypeError, ValueError):
        return v


def _next_cursor(payload: Dict[str, Any]) -> Optional[str]:
    href = ((payload.get("_links") or {}).get("next") or {}).get("href")
    if not href:
        return None
    values = parse_qs(urlparse(href).query).get("search_after")
    return values[0] if values else None


class PimClient:
    def __init__(
        self,
        base_url: str = settings.AKENEO_BASE_URL,
        client_id: str = settings.AKENEO_CLIENT_ID,
        client_secret: str = settings.AKENEO_CLIENT_SECRET,
        username: str = settings.AKENEO_USERNAME,
        password: str = settings.AKENEO_PASSWORD,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._username = username
        self._password = password
        self._http = http or httpx.AsyncClient(timeout=timeout, headers=settings.HTTP_EXTRA_HEADERS)
        self._owns_http = http is None
        self._token: Optional[str] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # --- auth ---------------------------------------------------------------

    async def authenticate(self) -> str:
        if not all([self.base_url, self._client_id, self._client_secret, self._username, self._password]):
            raise ConfigurationError("Missing Akeneo credentials (AKENEO_* settings)")

        r = await self._http.post(
            f"{self.base_url}/api/oauth/v1/token",
            auth=(self._client_id, self._client_secret),
            json={"grant_type": "password", "username": self._username, "password": self._password},
        )
        if r.status_code != 200:
            raise PimApiError(f"Akeneo token request failed: {summarize_body(r.text)}", r.status_code)
        token = (r.json() or {}).get("access_token")
        if not token:
            raise PimApiError("Akeneo token response has no access_token", r.status_code)
        self._token = token
        logger.debug("[PIM] access token acquired")
        return token

    async def _with_token(self, call: Callable[[], Awaitable[T]]) -> T:
        retries = 0
        while True:
            if not self._token:
                await self.authenticate()
            try:
                return await call()
            except PimTokenExpiredError:
                if retries >= TOKEN_RETRIES:
                    raise
                retries += 1
                logger.info("[PIM] access token rejected, re-authenticating (%d/%d)", retries, TOKEN_RETRIES)
                self._token = None

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async def call() -> httpx.Response:
            r = await self._http.get(url, params=params, headers={"Authorization": f"Bearer {self._token}"})
            if r.status_code == 401:
                raise PimTokenExpiredError(f"Akeneo rejected the access token: {summarize_body(r.text)}", 401)
            if r.status_code >= 400:
                raise PimApiError(f"GET {url} failed: {r.status_code} {summarize_body(r.text)}", r.status_code)
            return r

        return await self._with_token(call)

    # --- products -----------------------------------------------------------

    async def list_products(
        self,
        families: List[str],
        completeness: str,
        scope: str,
        limit: int = 5,
        search_after: Optional[str] = None,
        updated_after: Optional[datetime] = None,
    ) -> ProductPage:
        params: Dict[str, Any] = {
            "limit": str(limit),
            "pagination_type": "search_after",
            "search": json.dumps(build_product_search(families, completeness, scope, updated_after)),
        }
        if search_after:
            params["search_after"] = search_after

        r = await self._get(f"{self.base_url}/api/rest/v1/products", params)
        payload = r.json() or {}
        items = [SourceItem.model_validate(i) for i in (payload.get("_embedded") or {}).get("items", [])]
        return ProductPage(items=items, next_cursor=_next_cursor(payload), total=payload.get("items_count"))

    async def count_products(
        self,
        families: List[str],
        completeness: str,
        scope: str,
        updated_after: Optional[datetime] = None,
    ) -> Optional[int]:
        params = {
            "limit": "1",
            "with_count": "true",
            "search": json.dumps(build_product_search(families, completeness, scope, updated_after)),
        }
        r = await self._get(f"{self.base_url}/api/rest/v1/products", params)
        return (r.json() or {}).get("items_count")

    async def get_product_model(self, code: str) -> ParentModel:
        r = await self._get(f"{self.base_url}/api/rest/v1/product-models/{quote(code, safe='')}")
        return ParentModel.model_validate(r.json())

    # --- assets -------------------------------------------------------------

    async def get_asset_download_url(self, asset_family: str, asset_code: str) -> str:
        url = (
            f"{self.base_url}/api/rest/v1/asset-families/{quote(asset_family, safe='')}"
            f"/assets/{quote(asset_code, safe='')}"
        )
        r = await self._get(url)
        try:
            return r.json()["values"]["media"][0]["_links"]["download"]["href"]
        except (KeyError, IndexError, TypeError) as e:
            raise PimApiError(f"Asset {asset_family}/{asset_code} has no downloadable media") from e

    async def get_file_bytes(self, url: str) -> bytes:
        r = await self._get(url)
        if not r.content:
            raise PimApiError(f"Empty file at {url}")
        return r.content
