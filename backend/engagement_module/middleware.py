from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .models import User, UserRole


ROLE_ACCESS = {
    UserRole.ADMIN: {UserRole.ADMIN, UserRole.TEACHER, UserRole.PARENT, UserRole.STUDENT},
    UserRole.TEACHER: {UserRole.TEACHER},
    UserRole.PARENT: {UserRole.PARENT},
    UserRole.STUDENT: {UserRole.STUDENT},
}


def resolve_user(db: Session, user_id: str | None) -> User:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    user = db.get(User, user_id.strip())
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db_session),
) -> User:
    return resolve_user(db, x_user_id)


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        reachable = ROLE_ACCESS.get(current_user.role, {current_user.role})
        if not set(allowed_roles).intersection(reachable):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")
        return current_user

    return dependency
