"""Background job modules for periodic election upkeep."""

from app.jobs.election_status_sync import election_status_sync
from app.jobs.tally_reconcile import tally_reconcile

__all__ = [
    "election_status_sync",
    "tally_reconcile",
]
