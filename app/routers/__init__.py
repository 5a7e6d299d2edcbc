"""API router package."""

from app.routers import admin, auth, candidates, elections, voters, votes

__all__ = [
    "admin",
    "auth",
    "candidates",
    "elections",
    "voters",
    "votes",
]
