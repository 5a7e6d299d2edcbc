"""Shared Supabase data access helpers."""

from __future__ import annotations

import logging
import re
import time
from collections import defaultdict
from typing import Any

from postgrest import APIError

from app.config import settings
from app.utils.errors import DuplicateKeyError, InvalidInputError, NotFoundError
from supabase import Client

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
_KEY_DETAIL = re.compile(r"Key \(([^)]+)\)")
_CONSTRAINT_NAME = re.compile(r'unique constraint "([^"]+)"')
_KNOWN_UNIQUE_COLUMNS = (
    "verification_code",
    "phone_number",
    "national_id",
    "voter_hash",
    "vote_hash",
    "voter_id",
    "email",
)


def is_unique_violation(exc: APIError) -> bool:
    """Return True when a write failed on a unique constraint."""
    message = str(getattr(exc, "message", "")).lower()
    code = str(getattr(exc, "code", "")).lower()
    return "duplicate key value" in message or code == UNIQUE_VIOLATION


def violated_field(exc: APIError) -> str | None:
    """Extract the leading column of the violated unique key, if reported."""
    details = str(getattr(exc, "details", "") or "")
    match = _KEY_DETAIL.search(details)
    if match:
        return match.group(1).split(",")[0].strip()

    message = str(getattr(exc, "message", "") or "")
    match = _CONSTRAINT_NAME.search(message)
    if match:
        constraint = match.group(1)
        for column in _KNOWN_UNIQUE_COLUMNS:
            if column in constraint:
                return column
    return None


class SupabaseService:
    """Thin helper wrapper around a Supabase client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def execute(self, query, default: Any = None) -> Any:
        """Execute a Supabase query and normalize API errors."""
        response = self._run(query)
        data = response.data
        return default if data is None and default is not None else data

    def execute_with_count(self, query) -> tuple[list[dict[str, Any]], int]:
        """Execute a ``count="exact"`` query and return rows plus total."""
        response = self._run(query)
        return list(response.data or []), int(response.count or 0)

    def _run(self, query):
        started = time.perf_counter()
        try:
            response = query.execute()
        except APIError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(violated_field(exc)) from exc
            message = getattr(exc, "message", "Database request failed")
            raise InvalidInputError(str(message)) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        threshold_ms = settings.slow_query_log_threshold_ms
        if threshold_ms > 0 and elapsed_ms >= threshold_ms:
            logger.warning("Slow Supabase query %.1fms", elapsed_ms)
        return response

    @staticmethod
    def apply_filters(query, filters: dict[str, Any] | None):
        """Apply equality filters; list values become ``IN`` filters."""
        for key, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                query = query.in_(key, list(value))
            else:
                query = query.eq(key, value)
        return query

    def select_one(
        self,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        """Select a single row and raise NotFoundError when missing."""
        row = self.find_one(table, filters, columns=columns)
        if row is None:
            raise NotFoundError(not_found_label or table)
        return row

    def find_one(
        self,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
    ) -> dict[str, Any] | None:
        """Select a single row or return None."""
        query = self.apply_filters(self.client.table(table).select(columns), filters)
        rows = self.execute(query.limit(1), default=[])
        return rows[0] if rows else None

    def select_many(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select many rows from a table with optional filters and paging."""
        query = self.apply_filters(self.client.table(table).select(columns), filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return self.execute(query, default=[])

    def select_page(self, query, page: int, limit: int) -> tuple[list[dict[str, Any]], int]:
        """Run a prepared ``count="exact"`` query for one 1-based page."""
        start = (max(1, page) - 1) * limit
        return self.execute_with_count(query.range(start, start + limit - 1))

    def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        """Count rows in a table with optional equality filters."""
        query = self.client.table(table).select("*", count="exact", head=True)
        _, total = self.execute_with_count(self.apply_filters(query, filters))
        return total

    def insert_one(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return the created object."""
        rows = self.execute(self.client.table(table).insert(payload), default=[])
        if not rows:
            raise InvalidInputError(f"Failed to insert into {table}")
        return rows[0]

    def update(
        self,
        table: str,
        filters: dict[str, Any],
        payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Update rows by equality filters and return the updated rows."""
        query = self.apply_filters(self.client.table(table).update(payload), filters)
        return self.execute(query, default=[])

    def update_one(
        self,
        table: str,
        row_id: str,
        payload: dict[str, Any],
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        """Update one row by id and return it."""
        rows = self.update(table, {"id": row_id}, payload)
        if not rows:
            raise NotFoundError(not_found_label or table)
        return rows[0]

    def delete(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        """Delete rows by equality filters and return removed rows."""
        query = self.apply_filters(self.client.table(table).delete(), filters)
        return self.execute(query, default=[])

    def get_map(self, table: str, ids: list[str], columns: str = "*") -> dict[str, dict[str, Any]]:
        """Fetch rows by id and return an id-keyed mapping."""
        unique_ids = sorted({str(row_id) for row_id in ids if row_id})
        if not unique_ids:
            return {}
        rows = self.execute(
            self.client.table(table).select(columns).in_("id", unique_ids),
            default=[],
        )
        return {str(row["id"]): row for row in rows}


def ilike_any(columns: list[str], term: str) -> str:
    """Build a PostgREST ``or`` expression matching ``term`` in any column."""
    cleaned = term.replace(",", " ").replace("(", " ").replace(")", " ").strip()
    return ",".join(f"{column}.ilike.*{cleaned}*" for column in columns)


def count_by(rows: list[dict[str, Any]], key: str) -> dict[str, int]:
    """Count rows by the value of ``key``."""
    counts: dict[str, int] = defaultdict(int)
    for row in rows:
        counts[str(row.get(key))] += 1
    return dict(counts)


def pick(payload: dict[str, Any], allowed: set[str]) -> dict[str, Any]:
    """Return only the allow-listed keys of ``payload``."""
    return {key: value for key, value in payload.items() if key in allowed}
