from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

"""Remote granite entity API client.

Thin wrapper over a requests.Session. Create calls either return an
ApiResponse (``data`` is None when the server rejected the entity at the
application level) or raise CommitError (network failure, HTTP >= 400).
create_tagged() turns a parent create call into an explicit
Created / AlreadyExists / Failed result for the hierarchy resolver.
"""

__all__ = [
    "CommitError",
    "ApiResponse",
    "CreateStatus",
    "CreateResult",
    "EntityKind",
    "GraniteApiClient",
]

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class CommitError(Exception):
    """Remote call rejected or failed. Scoped to a single row."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EntityKind(Enum):
    VARIANT = "variants"
    SPECIFIC_VARIANT = "specific-variants"
    PRODUCT = "products"


@dataclass(frozen=True)
class ApiResponse:
    data: Any = None  # 作成系は entity dict、一覧系は list
    message: str | None = None
    status_code: int | None = None

    @property
    def entity_id(self) -> str | None:
        if not isinstance(self.data, dict):
            return None
        value = self.data.get("_id") or self.data.get("id")
        return str(value) if value is not None else None


class CreateStatus(Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


@dataclass(frozen=True)
class CreateResult:
    status: CreateStatus
    entity_id: str | None = None
    message: str | None = None


def _extract_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error")
        if msg:
            return str(msg)
    return fallback


class GraniteApiClient:
    """Client for the /granite REST endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/granite/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        url = self._url(path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise CommitError(f"{method} {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = _extract_message(body, f"HTTP {response.status_code}")
            raise CommitError(message, status_code=response.status_code)

        if not isinstance(body, dict):
            return ApiResponse(data=None, message="Malformed response", status_code=response.status_code)
        return ApiResponse(data=body.get("data"), message=body.get("message"), status_code=response.status_code)

    # create endpoints
    def create(self, kind: EntityKind, payload: dict[str, Any]) -> ApiResponse:
        return self._request("POST", kind.value, json=payload)

    def create_variant(self, payload: dict[str, Any]) -> ApiResponse:
        return self.create(EntityKind.VARIANT, payload)

    def create_specific_variant(self, payload: dict[str, Any]) -> ApiResponse:
        return self.create(EntityKind.SPECIFIC_VARIANT, payload)

    def create_product(self, payload: dict[str, Any]) -> ApiResponse:
        return self.create(EntityKind.PRODUCT, payload)

    def create_tagged(self, kind: EntityKind, payload: dict[str, Any]) -> CreateResult:
        """Create an entity and classify the outcome instead of raising."""
        try:
            response = self.create(kind, payload)
        except CommitError as e:
            if e.status_code == HTTP_CONFLICT:
                return CreateResult(CreateStatus.ALREADY_EXISTS, message=str(e))
            return CreateResult(CreateStatus.FAILED, message=str(e))
        if response.data:
            return CreateResult(CreateStatus.CREATED, entity_id=response.entity_id)
        return CreateResult(CreateStatus.FAILED, message=response.message or "Unknown error")

    # list / lookup endpoints
    def _list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        response = self._request("GET", path, params=params)
        data = response.data
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            return data["items"]  # ページング形式
        return []

    def list_variants(self) -> list[dict[str, Any]]:
        return self._list("variants")

    def list_specific_variants(self) -> list[dict[str, Any]]:
        return self._list("specific-variants", params={"limit": 1000})

    def list_specific_variants_by_variant(self, variant_id: str) -> list[dict[str, Any]]:
        return self._list(f"specific-variants/by-variant/{variant_id}")

    def list_products(self) -> list[dict[str, Any]]:
        return self._list("products")

    def find_variant_by_name(self, name: str) -> str | None:
        for item in self.list_variants():
            if str(item.get("name", "")).strip() == name:
                return str(item.get("_id") or item.get("id"))
        return None

    def find_specific_variant(self, variant_id: str, name: str) -> str | None:
        for item in self.list_specific_variants_by_variant(variant_id):
            if str(item.get("name", "")).strip() == name:
                return str(item.get("_id") or item.get("id"))
        return None

    def close(self) -> None:
        self.session.close()
