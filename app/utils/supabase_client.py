"""Shared service-role Supabase client.

Voters and admins sign in against this API rather than Supabase Auth, so
every table read and write uses the service role and the service layer
does the authorization.
"""

from functools import lru_cache

import httpx
from supabase.lib.client_options import SyncClientOptions

from app.config import settings
from supabase import Client, create_client

# Edge functions are never called with a longer budget than this.
FUNCTION_TIMEOUT_CAP_SECONDS = 30


def request_timeout() -> int:
    return max(1, settings.supabase_postgrest_timeout_seconds)


def http_limits() -> httpx.Limits:
    """Connection pool bounds; keepalive never exceeds the pool size."""
    pool_size = max(10, settings.supabase_http_max_connections)
    keepalive = min(pool_size, settings.supabase_http_max_keepalive_connections)
    return httpx.Limits(max_connections=pool_size, max_keepalive_connections=max(5, keepalive))


def client_options() -> SyncClientOptions:
    timeout = request_timeout()
    pooled = httpx.Client(timeout=httpx.Timeout(timeout), limits=http_limits())
    return SyncClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=timeout,
        storage_client_timeout=timeout,
        function_client_timeout=min(timeout, FUNCTION_TIMEOUT_CAP_SECONDS),
        httpx_client=pooled,
    )


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """Build the client once per process; jobs and requests share its pool."""
    return create_client(settings.supabase_url, settings.supabase_service_key, options=client_options())
