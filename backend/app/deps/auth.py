"""
Caller-identity dependencies.

Tokens are issued by the account service; this app only verifies them and
maps the `sub` claim onto a row in `users`.

    @router.get("/films")
    def list_films(user: User | None = Depends(get_optional_user)): ...

    @router.post("/films")
    def create_film(user: User = Depends(get_current_user)): ...
"""
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.db.models import User
from app.db.session import get_db

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _credentials_exception(detail: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(token: str, db: Session) -> User:
    sub = decode_access_token(token)
    if sub is None:
        raise _credentials_exception()

    try:
        user_id = UUID(sub)
    except (ValueError, AttributeError, TypeError):
        raise _credentials_exception()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _credentials_exception()
    if not user.is_active:
        raise _credentials_exception("Account is deactivated")
    return user


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Return the authenticated User; 401 when no valid bearer token is sent."""
    if not token:
        raise _credentials_exception("Not authenticated")
    return _resolve_user(token, db)


def get_optional_user(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    """
    Like get_current_user, but anonymous callers get None instead of a 401.

    A token that is present but invalid is still rejected.
    """
    if not token:
        return None
    return _resolve_user(token, db)
