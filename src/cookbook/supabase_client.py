"""Minimal PostgREST client for the hosted Supabase tables."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import requests

from cookbook.repository import Row, StoreError

logger = logging.getLogger(__name__)

_REST_PATH = "/rest/v1"


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _in_list(values: Sequence[Any]) -> str:
    # PostgREST needs values containing reserved characters double-quoted
    parts = []
    for value in values:
        text = _literal(value)
        if any(ch in text for ch in ',()"\\ '):
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        parts.append(text)
    return f"in.({','.join(parts)})"


def _filters(
    eq: Mapping[str, Any] | None,
    in_: tuple[str, Sequence[Any]] | None = None,
) -> dict[str, str]:
    params: dict[str, str] = {}
    for col, value in (eq or {}).items():
        params[col] = "is.null" if value is None else f"eq.{_literal(value)}"
    if in_ is not None:
        col, values = in_
        params[col] = _in_list(values)
    return params


class SupabaseClient:
    """Thin wrapper around the ``/rest/v1/<table>`` endpoints.

    Implements :class:`cookbook.repository.Repository`. ``access_token`` is a
    user JWT when row-level security should apply, otherwise the anon key is
    used as the bearer.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        access_token: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not url or not anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required but were empty.")
        self._base = url.rstrip("/") + _REST_PATH
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "apikey": anon_key,
                "Authorization": f"Bearer {access_token or anon_key}",
                "Content-Type": "application/json",
            }
        )

    # ── public ──────────────────────────────────────────────────────────
    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        eq: Mapping[str, Any] | None = None,
        in_: tuple[str, Sequence[Any]] | None = None,
        order: str | None = None,
        desc: bool = True,
        limit: int | None = None,
    ) -> list[Row]:
        if in_ is not None and not in_[1]:
            return []
        params = {"select": columns, **_filters(eq, in_)}
        if order:
            params["order"] = f"{order}.{'desc' if desc else 'asc'}"
        if limit is not None:
            params["limit"] = str(int(limit))
        resp = self._request("GET", table, params=params)
        return resp.json()  # type: ignore[no-any-return]

    def count(self, table: str, *, eq: Mapping[str, Any] | None = None) -> int:
        params = {"select": "id", **_filters(eq)}
        resp = self._request("HEAD", table, params=params, prefer="count=exact")
        content_range = resp.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        if not total.isdigit():
            raise StoreError(f"Missing count for {table}: Content-Range={content_range!r}")
        return int(total)

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[Row]:
        payload = [dict(row) for row in rows]
        if not payload:
            return []
        resp = self._request(
            "POST", table, json_body=payload, prefer="return=representation"
        )
        return resp.json()  # type: ignore[no-any-return]

    def update(
        self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]
    ) -> list[Row]:
        resp = self._request(
            "PATCH",
            table,
            params=_filters(eq),
            json_body=dict(values),
            prefer="return=representation",
        )
        return resp.json()  # type: ignore[no-any-return]

    def delete(self, table: str, *, eq: Mapping[str, Any]) -> int:
        if not eq:
            raise StoreError(f"Refusing to delete from {table} without a filter")
        resp = self._request(
            "DELETE", table, params=_filters(eq), prefer="return=representation"
        )
        return len(resp.json())

    # ── private ─────────────────────────────────────────────────────────
    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> requests.Response:
        url = f"{self._base}/{table}"
        headers = {"Prefer": prefer} if prefer else {}
        try:
            resp = self._send(method, url, params, json_body, headers)
            if resp.status_code == 429:
                retry_after = int(resp.headers.get("Retry-After", "1"))
                logger.warning("Rate-limited on %s; sleeping %ds", table, retry_after)
                time.sleep(retry_after)
                resp = self._send(method, url, params, json_body, headers)
        except requests.RequestException as exc:
            raise StoreError(f"{method} {table} failed: {exc}") from exc

        if resp.status_code >= 400:
            code: str | None = None
            message = resp.text[:500]
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                code = body.get("code")
                message = body.get("message") or message
            raise StoreError(
                f"Supabase returned {resp.status_code} for {table}: {message}", code=code
            )
        return resp

    def _send(
        self,
        method: str,
        url: str,
        params: Mapping[str, str] | None,
        json_body: Any,
        headers: Mapping[str, str],
    ) -> requests.Response:
        return self._session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=dict(headers),
            timeout=self._timeout,
        )
