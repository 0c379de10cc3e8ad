"""Thin async client for the workspace datastore's PostgREST endpoint.

Every request carries the project ``apikey`` and the caller's bearer token,
so row-level security in the store decides what the caller may see.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

import httpx
from loguru import logger

from chatkin.errors import StoreError


def _literal(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class TableQuery:
    """Immutable filter builder for one table."""

    client: PostgrestClient
    table: str
    params: tuple[tuple[str, str], ...] = field(default=())

    def _with(self, key: str, value: str) -> TableQuery:
        return replace(self, params=(*self.params, (key, value)))

    def select(self, columns: str = "*") -> TableQuery:
        return self._with("select", columns)

    def eq(self, column: str, value: object) -> TableQuery:
        return self._with(column, f"eq.{_literal(value)}")

    def lt(self, column: str, value: object) -> TableQuery:
        return self._with(column, f"lt.{_literal(value)}")

    def lte(self, column: str, value: object) -> TableQuery:
        return self._with(column, f"lte.{_literal(value)}")

    def like(self, column: str, pattern: str) -> TableQuery:
        return self._with(column, f"like.{pattern}")

    def prefix(self, column: str, prefix: str) -> TableQuery:
        return self.like(column, f"{prefix}*")

    def search(self, columns: tuple[str, ...], term: str) -> TableQuery:
        """Case-insensitive substring match on any of ``columns``."""
        pattern = _quote(f"*{term}*")
        clauses = ",".join(f"{column}.ilike.{pattern}" for column in columns)
        return self._with("or", f"({clauses})")

    def order(self, column: str, *, descending: bool = False) -> TableQuery:
        return self._with("order", f"{column}.{'desc' if descending else 'asc'}")

    def limit(self, count: int) -> TableQuery:
        return self._with("limit", str(count))

    async def fetch(self, *, token: str | None = None) -> list[dict[str, Any]]:
        data = await self.client.request("GET", self.table, params=self.params, token=token)
        return data if isinstance(data, list) else []

    async def update(self, values: dict[str, Any], *, token: str | None = None) -> None:
        await self.client.request("PATCH", self.table, params=self.params, token=token, json=values)

    async def delete(self, *, token: str | None = None) -> None:
        await self.client.request("DELETE", self.table, params=self.params, token=token)


class PostgrestClient:
    """Workspace datastore handle, injected wherever rows are read or written."""

    def __init__(self, base_url: str, api_key: str, *, http: httpx.AsyncClient | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http = http or httpx.AsyncClient(timeout=30.0)

    def table(self, name: str) -> TableQuery:
        return TableQuery(client=self, table=name)

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: tuple[tuple[str, str], ...],
        token: str | None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token or self._api_key}",
        }
        url = f"{self._base_url}/{table}"
        try:
            response = await self._http.request(method, url, params=list(params), headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.warning("store.request.error method={} table={} error={}", method, table, exc)
            raise StoreError(f"Request to {table} failed: {exc}", details=str(exc)) from exc

        if response.is_error:
            details = _error_details(response)
            logger.warning(
                "store.request.status method={} table={} status={} details={}",
                method,
                table,
                response.status_code,
                details,
            )
            raise StoreError(
                f"{method} {table} returned {response.status_code}",
                status_code=response.status_code,
                details=details,
            )

        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        await self._http.aclose()


def _error_details(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str):
            return message
    return response.text
