"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "AdminService": "app.services.admin_service",
    "CandidateService": "app.services.candidate_service",
    "ElectionService": "app.services.election_service",
    "SupabaseService": "app.services.common",
    "TabulationService": "app.services.results_service",
    "TallyService": "app.services.tally_service",
    "VoteService": "app.services.vote_service",
    "VoterService": "app.services.voter_service",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
