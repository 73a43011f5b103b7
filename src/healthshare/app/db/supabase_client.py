"""Async PostgREST client wrapper for Supabase.

This is the single point of Supabase HTTP interaction for the share
stores. It only knows rows and filters; domain mapping lives in the
store modules.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)

Filters = Mapping[str, "tuple[str, Any] | Any"]

_ERRORS_BY_STATUS: dict[int, type[SupabaseError]] = {
    401: SupabaseAuthError,
    403: SupabaseAuthError,
    404: SupabaseNotFoundError,
    409: SupabaseConflictError,
}


def _split_schema_table(table: str, default_schema: str) -> tuple[str, str]:
    # "health.share_grants" (or "health.fn" for rpc) selects the schema via
    # Accept-Profile/Content-Profile.
    if "." in table:
        schema, name = table.split(".", 1)
        return schema.strip(), name.strip()
    return default_schema, table.strip()


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "is":
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = [json.dumps(v) if isinstance(v, str) else str(v) for v in value]
        return f"({','.join(items)})"

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filters_to_params(filters: Filters | None) -> dict[str, str]:
    """Turn ``{"col": ("op", value)}`` (or ``{"col": value}`` for eq) into query params."""
    params: dict[str, str] = {}
    for col, spec in (filters or {}).items():
        if isinstance(spec, tuple) and len(spec) == 2:
            op, val = spec
        else:
            op, val = "eq", spec
        params[str(col)] = f"{op}.{_encode_filter_value(str(op), val)}"
    return params


class SupabaseClient:
    """Minimal async PostgREST client (service role) returning row dicts."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or httpx.AsyncClient()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, schema: str, method: str, *, returning: bool = False) -> dict[str, str]:
        # Never log these headers.
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
            "Accept-Profile": schema,
        }
        if method != "GET":
            headers["Content-Profile"] = schema
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
        except ValueError:
            pass

        err_cls = _ERRORS_BY_STATUS.get(resp.status_code, SupabaseError)
        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        resp = await self._client.request(
            method,
            f"{self.base_rest_url}/{table_name}",
            params=params,
            json=json_body,
            headers=self._headers(schema, method, returning=method != "GET"),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message=f"expected list response from {method}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return await self._request("GET", table, params=params)

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        return await self._request("POST", table, json_body=data)

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """PATCH every row matching ``filters``; returns the updated rows.

        An empty result means no row matched.
        """
        if not filters:
            raise ValueError("update requires at least one filter")
        return await self._request(
            "PATCH", table, params=filters_to_params(filters), json_body=data,
        )

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call a Postgres function; ``"health.fn"`` selects the schema like tables do."""
        schema, name = _split_schema_table(function_name, self._default_schema)
        resp = await self._client.request(
            "POST",
            f"{self.base_rest_url}/rpc/{name}",
            json=dict(params or {}),
            headers=self._headers(schema, "POST"),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return resp.json()
