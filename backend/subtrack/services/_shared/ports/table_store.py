from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

Row = dict[str, Any]


class TableStore(Protocol):
    """
    Owner-scoped access to the relational tables (``profiles``,
    ``subscriptions``, ``notifications``).

    Filters are equality matches (``{"user_id": uid, "id": row_id}``). Rows
    come back as raw JSON mappings; services normalize them before use.
    """

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return every row matching ``filters``."""

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert one row and return it as stored."""

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> Row:
        """Replace fields on the single matching row and return it as stored."""

    async def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
        """Delete every row matching ``filters``."""
