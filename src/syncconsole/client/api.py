"""HTTP client for the sync backend API.

This module provides:
- SyncBackend: Protocol the console controller consumes
- BackendClient: httpx implementation of SyncBackend
- Dataset / Field: catalog records returned by the backend
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from syncconsole.core.config import ConsoleConfig
from syncconsole.core.types import INITIALIZATION_ERROR_RECORD

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass(frozen=True)
class Dataset:
    """Calculated insight record from the catalog.

    The reserved Initialization_Error record uses the same shape; its
    ``error`` carries the message of the last failed initialization.
    """

    name: str
    label: str
    sync_completed: bool = False
    error: str | None = None

    @property
    def is_error_record(self) -> bool:
        """Check if this is the reserved initialization error record."""
        return self.name == INITIALIZATION_ERROR_RECORD

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dataset:
        """Create from API response dictionary."""
        return cls(
            name=data["name"],
            label=data.get("label") or data["name"],
            sync_completed=bool(data.get("sync_completed", False)),
            error=data.get("error") or None,
        )


@dataclass(frozen=True)
class Field:
    """Key field candidate of a dataset."""

    name: str
    label: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Field:
        """Create from API response dictionary."""
        return cls(name=data["name"], label=data.get("label") or data["name"])


class SyncBackend(Protocol):
    """Backend operations consumed by the console.

    Initialize and both sync calls only acknowledge the request; the
    outcome is published later on the event channel. Every call raises
    APIError when the backend rejects it.
    """

    async def list_datasets(self) -> list[Dataset]: ...

    async def list_fields(self, dataset: str) -> list[Field]: ...

    async def initialize(self) -> None: ...

    async def full_sync(self, dataset: str) -> None: ...

    async def incremental_sync(self, dataset: str, field: str) -> None: ...


class BackendClient:
    """HTTP client for the sync backend API."""

    def __init__(
        self,
        config: ConsoleConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend client.

        Args:
            config: Console configuration with URL, token and timeout.
            transport: Optional httpx transport (used by tests).
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

    async def __aenter__(self) -> BackendClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            raise APIError(self._error_detail(response), response.status_code)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or "Unknown error"
        if isinstance(data, dict):
            return str(data.get("detail") or data.get("message") or "Unknown error")
        return "Unknown error"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.debug("Request to %s failed: %s", url, e)
            raise APIError(f"Backend unreachable: {e}") from e
        return self._handle_response(response)

    # === Catalog operations ===

    async def list_datasets(self) -> list[Dataset]:
        """List calculated insights, including the error record if present.

        Returns:
            List of catalog records.
        """
        response = await self._request("GET", "/api/insights")
        try:
            return [Dataset.from_dict(d) for d in response.json()]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("Invalid catalog response: %s", e)
            raise APIError("Invalid response from backend", response.status_code) from e

    async def list_fields(self, dataset: str) -> list[Field]:
        """List key field candidates of a dataset.

        Args:
            dataset: Dataset name.

        Returns:
            List of fields.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        response = await self._request("GET", f"/api/insights/{dataset}/fields")
        try:
            return [Field.from_dict(f) for f in response.json()]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("Invalid field list for %s: %s", dataset, e)
            raise APIError("Invalid response from backend", response.status_code) from e

    # === Pipeline operations ===

    async def initialize(self) -> None:
        """Ask the backend to initialize dataset metadata."""
        await self._request("POST", "/api/initialize")
        logger.info("Initialization requested")

    async def full_sync(self, dataset: str) -> None:
        """Ask the backend to run a full sync of a dataset.

        Args:
            dataset: Dataset name.
        """
        await self._request("POST", f"/api/insights/{dataset}/full-sync")
        logger.info("Full sync requested for %s", dataset)

    async def incremental_sync(self, dataset: str, field: str) -> None:
        """Ask the backend to run an incremental sync keyed on a field.

        Args:
            dataset: Dataset name.
            field: Key field name.
        """
        await self._request(
            "POST",
            f"/api/insights/{dataset}/incremental-sync",
            json={"field": field},
        )
        logger.info("Incremental sync requested for %s on %s", dataset, field)
