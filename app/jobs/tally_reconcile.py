"""Tally reconciliation scheduled job."""

from __future__ import annotations

import logging

from app.services.tally_service import TallyService
from app.utils.supabase_client import get_service_client

logger = logging.getLogger(__name__)


async def tally_reconcile() -> None:
    """Recount vote tallies of open elections from the ledger."""
    reconciled = TallyService(get_service_client()).reconcile_open_elections()
    logger.info("tally_reconcile completed for %s elections", reconciled)
