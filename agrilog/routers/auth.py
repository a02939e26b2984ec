import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select
from ..database import get_session
from ..models import (
    User, UserRole, Role, Profile, InstitutionProfile, AdminProfile, AdminLevel, DASHBOARD_ROUTES,
)
from ..schemas import UserCreate, Token, UserRead, ProfileRead
from ..auth import get_password_hash, verify_password, create_access_token
from ..dependencies import get_current_user
from .. import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

def create_user(session: Session, data: UserCreate, role_level: AdminLevel = AdminLevel.ADMIN) -> User:
    """
    Inserts the user, their role, profile and role-specific profile.
    The caller commits.
    """
    if session.exec(select(User).where(User.email == data.email)).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(email=data.email, hashed_password=get_password_hash(data.password))
    session.add(user)
    session.flush()

    session.add(UserRole(user_id=user.id, role=data.role))
    session.add(Profile(
        user_id=user.id,
        full_name=data.full_name,
        phone_number=data.phone_number,
        village_location=data.village_location,
        preferred_language=data.preferred_language,
    ))
    if data.role == Role.INSTITUTION:
        session.add(InstitutionProfile(
            user_id=user.id,
            organization_name=data.organization_name,
            representative_name=data.full_name,
        ))
    elif data.role == Role.ADMIN:
        session.add(AdminProfile(user_id=user.id, role_level=role_level))
    return user

def token_for(user: User) -> dict:
    access_token = create_access_token(data={"sub": user.email})
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "role": user.role,
        "dashboard": DASHBOARD_ROUTES.get(user.role),
    }

def user_read(user: User) -> UserRead:
    profile = None
    if user.profile:
        profile = ProfileRead.model_validate(user.profile, from_attributes=True)
    return UserRead(
        id=user.id,
        email=user.email,
        is_active=user.is_active,
        role=user.role,
        dashboard=DASHBOARD_ROUTES.get(user.role),
        profile=profile,
    )

@router.post("/register", response_model=Token)
def register(user: UserCreate, session: Session = Depends(get_session)):
    role_level = AdminLevel.ADMIN
    if user.role == Role.ADMIN:
        # Only the very first admin may sign up; later ones are created by an admin
        existing_admin = session.exec(select(UserRole).where(UserRole.role == Role.ADMIN)).first()
        if existing_admin:
            raise HTTPException(status_code=403, detail="Admin accounts are created by an existing admin")
        role_level = AdminLevel.SUPER_ADMIN

    new_user = create_user(session, user, role_level)
    session.flush()
    session.refresh(new_user)
    audit.record(session, new_user, "user.register", "user", new_user.id)
    session.commit()
    session.refresh(new_user)

    logger.info("Registered %s user %s", user.role.value, new_user.id)
    return token_for(new_user)

@router.post("/token", response_model=Token)
def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == form_data.username)).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return token_for(user)

@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(get_current_user)):
    return user_read(current_user)
