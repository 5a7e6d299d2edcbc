"""Election status synchronization scheduled job."""

from __future__ import annotations

import logging

from app.services.election_service import ElectionService
from app.utils.supabase_client import get_service_client

logger = logging.getLogger(__name__)


async def election_status_sync() -> None:
    """Advance stored election statuses to their derived phase."""
    changed = ElectionService(get_service_client()).sync_statuses()
    logger.info("election_status_sync completed, %s elections advanced", changed)
