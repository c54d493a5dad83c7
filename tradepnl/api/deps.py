"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Callable, Iterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tradepnl.core.security import AuthenticatedUser, InvalidTokenError, RoleName, decode_access_token
from tradepnl.db.session import SessionLocal

security_scheme = HTTPBearer(auto_error=True)

READ_ROLES: tuple[RoleName, ...] = ("ADMIN", "FINANCE", "ANALYST")
WRITE_ROLES: tuple[RoleName, ...] = ("ADMIN", "FINANCE")


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> AuthenticatedUser:
    try:
        user = decode_access_token(credentials.credentials)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    request.state.actor = user.email
    request.state.tenant_id = user.tenant_id
    return user


def require_role(*roles: RoleName) -> Callable[..., AuthenticatedUser]:
    allowed_roles: set[str] = set(roles)

    def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency


__all__ = ["READ_ROLES", "WRITE_ROLES", "get_current_user", "get_db_session", "require_role"]
