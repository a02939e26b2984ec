import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from .auth import decode_access_token
from .database import get_session
from .models import User, Role

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

def get_current_user(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        raise credentials_exception

    user = session.exec(select(User).where(User.email == payload["sub"])).first()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        logger.info("Rejected token for deactivated user %s", user.id)
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return user

def require_roles(*roles: Role):
    """
    Dependency factory: only lets users holding one of `roles` through.
    """
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Not allowed for your role")
        return current_user
    return checker

require_farmer = require_roles(Role.FARMER)
require_extension = require_roles(Role.ENUMERATOR)
require_institution = require_roles(Role.INSTITUTION)
require_admin = require_roles(Role.ADMIN)
