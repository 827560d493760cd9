"""Remote document store boundary.

This module provides:
- RemoteStore: Protocol the engine consumes (create/update/delete/query)
- RemoteDocument: A document returned by a query
- HTTPRemoteStore: httpx-based client for a REST document store
- RemoteStoreError and subclasses: HTTP failures

HTTP layout:
    PUT    /api/collections/{collection}/documents/{doc_id}   create/overwrite
    PATCH  /api/collections/{collection}/documents/{doc_id}   update
    DELETE /api/collections/{collection}/documents/{doc_id}   delete
    GET    /api/collections/{collection}/documents            query
    GET    /health                                            probe
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from offlinesync.core.config import ServerConfig

logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteStoreError):
    """Authentication failed."""


class NotFoundError(RemoteStoreError):
    """Document or collection not found."""


@dataclass
class RemoteDocument:
    """Document returned by a remote query."""

    doc_id: str
    data: Any

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteDocument:
        """Create from API response dictionary."""
        return cls(doc_id=str(data["id"]), data=data.get("data"))

    def to_offline_dict(self) -> dict[str, Any]:
        """Flatten into a dict carrying the document id."""
        if isinstance(self.data, dict):
            return {"id": self.doc_id, **self.data}
        return {"id": self.doc_id, "data": self.data}


class RemoteStore(Protocol):
    """Protocol for remote document stores.

    Every call may raise on transient (network) or permanent (rejected
    payload, permission) failures. The engine retries both alike.
    """

    async def remote_create(self, collection: str, doc_id: str, payload: Any) -> None:
        """Create or overwrite a document."""
        ...

    async def remote_update(self, collection: str, doc_id: str, payload: Any) -> None:
        """Update fields of an existing document."""
        ...

    async def remote_delete(self, collection: str, doc_id: str) -> None:
        """Delete a document."""
        ...

    async def remote_query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[RemoteDocument]:
        """List documents of a collection matching filters."""
        ...


def filters_to_params(filters: dict[str, Any] | None) -> dict[str, str]:
    """Encode a {"where": {"field", "operator", "value"}} filter as query params."""
    if not filters or not filters.get("where"):
        return {}
    where = filters["where"]
    return {
        "field": str(where["field"]),
        "operator": str(where.get("operator", "==")),
        "value": str(where["value"]),
    }


class HTTPRemoteStore:
    """Async HTTP client for a REST document store."""

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server configuration with URL, token, and settings.
            transport: Optional transport override (used by tests).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPRemoteStore:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    @staticmethod
    def _document_path(collection: str, doc_id: str) -> str:
        return (
            f"/api/collections/{quote(collection, safe='')}"
            f"/documents/{quote(doc_id, safe='')}"
        )

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", "Unknown error")
            except ValueError:
                detail = response.text or "Unknown error"
            raise RemoteStoreError(detail, response.status_code)
        return response

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is reachable and healthy.

        Usable as the engine's connectivity probe.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Document operations ===

    async def remote_create(self, collection: str, doc_id: str, payload: Any) -> None:
        """Create or overwrite a document."""
        self._handle_response(
            await self._client.put(self._document_path(collection, doc_id), json=payload)
        )
        logger.debug("Remote create %s/%s", collection, doc_id)

    async def remote_update(self, collection: str, doc_id: str, payload: Any) -> None:
        """Update fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        self._handle_response(
            await self._client.patch(self._document_path(collection, doc_id), json=payload)
        )
        logger.debug("Remote update %s/%s", collection, doc_id)

    async def remote_delete(self, collection: str, doc_id: str) -> None:
        """Delete a document."""
        self._handle_response(
            await self._client.delete(self._document_path(collection, doc_id))
        )
        logger.debug("Remote delete %s/%s", collection, doc_id)

    async def remote_query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[RemoteDocument]:
        """List documents of a collection.

        Args:
            collection: Collection name.
            filters: Optional {"where": {"field", "operator", "value"}} filter.

        Returns:
            Matching documents.
        """
        response = self._handle_response(
            await self._client.get(
                f"/api/collections/{quote(collection, safe='')}/documents",
                params=filters_to_params(filters),
            )
        )
        return [RemoteDocument.from_dict(d) for d in response.json()]
