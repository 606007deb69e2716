"""
Stats API — /stats
────────────────────
  GET /stats/me/summary   — Headline counters (cached per user)
  GET /stats/me/detailed  — Genre / year / rating / month / status / director breakdowns
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.models import User
from app.db.session import get_db
from app.deps.auth import get_current_user
from app.deps.cache import get_stats_cache
from app.schemas.stats import DetailedStats, SummaryStats
from app.services import stats_service
from app.services.stats_cache import StatsCache

router = APIRouter()


@router.get("/me/summary", response_model=SummaryStats)
def get_my_summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> SummaryStats:
    return stats_service.get_summary(db, current_user.id, stats_cache)


@router.get("/me/detailed", response_model=DetailedStats)
def get_my_detailed(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> DetailedStats:
    return stats_service.get_detailed(db, current_user.id, stats_cache)
