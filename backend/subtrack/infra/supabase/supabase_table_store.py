# comments in English; reST docstrings
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from subtrack.infra.supabase._http import SupabaseError, raise_for_response
from subtrack.services._shared.ports import Row, TableStore


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class SupabaseTableStore(TableStore):
    """
    PostgREST-backed :class:`TableStore`.

    Requests go to ``/rest/v1/<table>`` with equality filters as query
    parameters. Writes ask for ``return=representation`` so the stored row
    comes back in the same round trip.

    :param client: ``AsyncClient`` built by
        :func:`subtrack.infra.supabase._http.build_client` with the user's bearer.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    @staticmethod
    def _path(table: str) -> str:
        return f"/rest/v1/{table}"

    @staticmethod
    def _filters(filters: Mapping[str, Any]) -> dict[str, str]:
        return {column: _eq(value) for column, value in filters.items()}

    @staticmethod
    def _single(rows: Any) -> Row:
        # mirrors PostgREST's .single(): exactly one row expected
        if isinstance(rows, list):
            if len(rows) != 1:
                raise SupabaseError(
                    "JSON object requested, multiple (or no) rows returned",
                    code="PGRST116",
                    status=406,
                )
            return rows[0]
        return rows

    # -------------------- API ------------------------

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        params = {"select": "*", **self._filters(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        response = await self.client.get(self._path(table), params=params)
        raise_for_response(response)
        return list(response.json() or [])

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        response = await self.client.post(
            self._path(table),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        raise_for_response(response)
        return self._single(response.json())

    async def update(
        self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]
    ) -> Row:
        response = await self.client.patch(
            self._path(table),
            params=self._filters(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        raise_for_response(response)
        return self._single(response.json())

    async def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
        response = await self.client.delete(self._path(table), params=self._filters(filters))
        raise_for_response(response)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> SupabaseTableStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
