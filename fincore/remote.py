"""HTTP backend for a hosted Postgres REST service.

Each entity type maps to a table of the same name with a ``user_id``
column; every request is filtered by the owner so one user can never
touch another user's rows.
"""

import logging
from typing import List, Optional

import httpx

from fincore.persistence import PersistenceBackend

logger = logging.getLogger(__name__)


class RemoteBackendError(Exception):
    """Raised when the REST service rejects or cannot answer a request."""

    pass


class RestBackend(PersistenceBackend):
    """
    Async REST client implementing the persistence contract.

    Usage:
        async with RestBackend(url, api_key) as backend:
            store = FinanceStore(backend, owner_id)
            await store.load_all()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RestBackend":
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers=self._headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        if not self._client:
            raise RemoteBackendError("Client not initialized. Use async context manager.")
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteBackendError(
                f"{method} {table} returned {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise RemoteBackendError(f"{method} {table} failed: {e}") from e
        return response

    async def load_all(self, entity_type: str, owner_id: str) -> List[dict]:
        response = await self._request(
            "GET", entity_type,
            params={"select": "*", "user_id": f"eq.{owner_id}", "order": "created_at.asc"},
        )
        rows = response.json()
        logger.debug("Fetched %d %s row(s)", len(rows), entity_type)
        return rows

    async def insert(self, entity_type: str, owner_id: str, record: dict) -> dict:
        response = await self._request(
            "POST", entity_type,
            json={**record, "user_id": owner_id},
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if not rows:
            raise RemoteBackendError(f"insert into {entity_type} returned no row")
        return rows[0]

    async def update(self, entity_type: str, owner_id: str, entity_id: str, changes: dict) -> None:
        response = await self._request(
            "PATCH", entity_type,
            params={"id": f"eq.{entity_id}", "user_id": f"eq.{owner_id}"},
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        if not response.json():
            raise RemoteBackendError(f"{entity_type} {entity_id} not found for this user")

    async def delete(self, entity_type: str, owner_id: str, entity_id: str) -> None:
        response = await self._request(
            "DELETE", entity_type,
            params={"id": f"eq.{entity_id}", "user_id": f"eq.{owner_id}"},
            headers={"Prefer": "return=representation"},
        )
        if not response.json():
            raise RemoteBackendError(f"{entity_type} {entity_id} not found for this user")
