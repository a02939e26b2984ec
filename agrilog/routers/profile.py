from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..database import get_session
from ..models import User, Profile
from ..schemas import ProfileUpdate, ProfileRead
from ..dependencies import get_current_user

router = APIRouter(prefix="/profile", tags=["profile"])

@router.get("/", response_model=ProfileRead)
def get_profile(current_user: User = Depends(get_current_user)):
    if not current_user.profile:
        return ProfileRead(full_name="")
    return current_user.profile

@router.put("/", response_model=ProfileRead)
def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    db_profile = current_user.profile
    profile_dict = profile_data.model_dump(exclude_unset=True)
    # Optional fields may be cleared with null; the name and language may not
    for key in ("full_name", "preferred_language"):
        if profile_dict.get(key, "") is None:
            del profile_dict[key]
    if not db_profile:
        profile_dict.setdefault("full_name", current_user.email)
        db_profile = Profile(user_id=current_user.id, **profile_dict)
    else:
        for key, value in profile_dict.items():
            setattr(db_profile, key, value)
    session.add(db_profile)

    session.commit()
    session.refresh(db_profile)
    return db_profile
