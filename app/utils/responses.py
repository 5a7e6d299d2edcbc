"""Uniform success envelope for API responses."""

from __future__ import annotations

from typing import Any


def success(data: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Wrap a payload as ``{"success": true, "message"?, "data"?, ...}``."""
    payload: dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    return payload


def pagination_meta(page: int, limit: int, total: int) -> dict[str, Any]:
    """Return next/prev page pointers for a page window."""
    start_index = (page - 1) * limit
    meta: dict[str, Any] = {}
    if start_index + limit < total:
        meta["next"] = {"page": page + 1, "limit": limit}
    if start_index > 0:
        meta["prev"] = {"page": page - 1, "limit": limit}
    return meta
