# comments in English; reST docstrings
"""Shared HTTP plumbing for the Supabase adapters."""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_TIMEOUT = 10.0


class SupabaseError(Exception):
    """
    Error reported by a Supabase endpoint.

    :param message: Human-readable text from the response body.
    :param code: PostgREST/PostgreSQL code (``23505``, ``PGRST116``) or GoTrue error code.
    :param status: HTTP status of the response.
    """

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status

    def __repr__(self) -> str:
        return f"SupabaseError({str(self)!r}, code={self.code!r}, status={self.status!r})"


def build_client(
    base_url: str,
    anon_key: str,
    *,
    access_token: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Return an ``AsyncClient`` carrying the project key and, when given, the user's bearer."""
    headers = {
        "apikey": anon_key,
        "Authorization": f"Bearer {access_token or anon_key}",
        "Accept": "application/json",
    }
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
    )


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"message": response.text}
    return payload if isinstance(payload, dict) else {"message": str(payload)}


def raise_for_response(response: httpx.Response) -> None:
    """Raise :class:`SupabaseError` for non-2xx responses."""
    if response.is_success:
        return
    payload = _error_payload(response)
    message = (
        payload.get("msg")
        or payload.get("message")
        or payload.get("error_description")
        or payload.get("error")
        or response.reason_phrase
        or f"HTTP {response.status_code}"
    )
    code = payload.get("code") if isinstance(payload.get("code"), str) else payload.get("error_code")
    raise SupabaseError(str(message), code=code, status=response.status_code)
