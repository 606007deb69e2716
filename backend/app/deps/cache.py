"""
Stats cache dependency.

The cache instance lives on app.state so tests can swap in their own
(short TTL, fake clock) without touching module globals.
"""
from fastapi import Request

from app.services.stats_cache import StatsCache


def get_stats_cache(request: Request) -> StatsCache:
    return request.app.state.stats_cache
