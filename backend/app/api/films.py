"""
Films API — /films
"""
from app.api.library import build_library_router
from app.services.library_service import FILMS

router = build_library_router(FILMS, "FILM")
