"""QuickBooks accounting API client"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...config import QUICKBOOKS_API_BASE_URL, QUICKBOOKS_MINOR_VERSION
from .exceptions import RemoteApiError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


@dataclass
class QuickBooksCredentials:
    """Bearer token and tenant for one sync operation"""

    access_token: str
    realm_id: str


def escape_query_value(value: str) -> str:
    """Escape a literal for the QuickBooks query language"""
    return (value or "").replace("\\", "\\\\").replace("'", "\\'")


class QuickBooksClient:
    """
    Thin wrapper over the QuickBooks v3 REST API.

    An httpx.AsyncClient may be injected (tests, connection reuse); otherwise a
    short-lived client is opened per request.
    """

    def __init__(
        self,
        credentials: QuickBooksCredentials,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = QUICKBOOKS_API_BASE_URL,
    ):
        self.credentials = credentials
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    @property
    def realm_id(self) -> str:
        return self.credentials.realm_id

    def _company_url(self, path: str) -> str:
        return f"{self.base_url}/company/{self.credentials.realm_id}/{path.lstrip('/')}"

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.credentials.access_token}",
        }

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.http_client is not None:
            return await self.http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            return await client.request(method, url, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        operation: str = "request",
    ) -> dict:
        query_params = {"minorversion": QUICKBOOKS_MINOR_VERSION}
        if params:
            query_params.update(params)

        try:
            response = await self._send(
                method,
                self._company_url(path),
                headers=self._headers(),
                params=query_params,
                json=json,
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ QuickBooks {operation} connection error: {e}")
            raise RemoteApiError(0, str(e), operation) from e

        if response.status_code >= 400:
            logger.error(f"❌ QuickBooks {operation} failed ({response.status_code}): {response.text}")
            raise RemoteApiError(response.status_code, response.text, operation)

        return response.json()

    async def query(self, statement: str) -> dict:
        """Run a query and return the QueryResponse object"""
        logger.info(f"🔎 QuickBooks query: {statement}")
        data = await self.request("GET", "query", params={"query": statement}, operation="query")
        return data.get("QueryResponse", {})

    async def query_entities(self, entity: str, statement: str) -> list[dict[str, Any]]:
        return (await self.query(statement)).get(entity, [])

    async def get_entity(self, entity: str, entity_id: str) -> dict:
        """Fetch a single record, e.g. get_entity('Estimate', '123')"""
        data = await self.request("GET", f"{entity.lower()}/{entity_id}", operation=f"{entity} fetch")
        return data.get(entity, {})

    async def create_entity(self, entity: str, payload: dict) -> dict:
        data = await self.request("POST", entity.lower(), json=payload, operation=f"{entity} create")
        return data.get(entity, {})

    async def update_entity(self, entity: str, payload: dict) -> dict:
        """Sparse update; payload must carry Id and SyncToken"""
        data = await self.request(
            "POST", entity.lower(), json={**payload, "sparse": True}, operation=f"{entity} update"
        )
        return data.get(entity, {})

    async def get_company_info(self) -> dict:
        data = await self.request(
            "GET", f"companyinfo/{self.credentials.realm_id}", operation="company info"
        )
        return data.get("CompanyInfo", {})

    async def download(self, url: str) -> httpx.Response:
        """Download a file from a pre-signed temporary URL (no bearer header)"""
        try:
            response = await self._send("GET", url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise RemoteApiError(0, str(e), "download") from e

        if response.status_code >= 400:
            raise RemoteApiError(response.status_code, response.text, "download")
        return response
