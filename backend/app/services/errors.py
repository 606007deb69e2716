"""
Domain errors shared by the library, season and episode services.

"Not found" is not an exception here: lookups return None and the API layer
turns that into a 404.
"""


class DuplicateOverlayError(Exception):
    """Raised when the user already has this title (same title + year) in their library."""


class ForbiddenError(Exception):
    """Raised when the target overlay is missing for, or not owned by, the caller."""
