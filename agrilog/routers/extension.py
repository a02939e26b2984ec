from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from ..database import get_session
from ..models import User, UserRole, Role, Profile, FarmField, FarmActivity, FarmerConfirmation, ActivityType
from ..schemas import ActivityCreate, ActivityRead, FieldRead, RosterEntry, Submission
from ..dependencies import require_extension
from ..activities import (
    create_collected_activity, get_farmer_or_404, profile_names, pending_sync_count, ActivityError,
)
from ..validators import contains

router = APIRouter(prefix="/extension", tags=["extension"])

def roster(session: Session, q: Optional[str] = None) -> List[RosterEntry]:
    farmer_ids = [r.user_id for r in session.exec(select(UserRole).where(UserRole.role == Role.FARMER)).all()]
    if not farmer_ids:
        return []

    profiles = session.exec(
        select(Profile).where(Profile.user_id.in_(farmer_ids)).order_by(Profile.full_name)
    ).all()
    if q:
        profiles = [p for p in profiles if contains(p.full_name, q) or contains(p.village_location, q)]

    activities = session.exec(
        select(FarmActivity).where(FarmActivity.user_id.in_([p.user_id for p in profiles] or [-1]))
    ).all()
    total, verified = {}, {}
    for a in activities:
        total[a.user_id] = total.get(a.user_id, 0) + 1
        if a.is_verified:
            verified[a.user_id] = verified.get(a.user_id, 0) + 1

    return [
        RosterEntry(
            id=p.user_id,
            full_name=p.full_name,
            village_location=p.village_location,
            phone_number=p.phone_number,
            total_entries=total.get(p.user_id, 0),
            verified_entries=verified.get(p.user_id, 0),
        )
        for p in profiles
    ]

def _collected_by(session: Session, worker: User) -> List[FarmActivity]:
    return session.exec(
        select(FarmActivity)
        .where(FarmActivity.collected_by == worker.id)
        .order_by(FarmActivity.created_at.desc(), FarmActivity.id.desc())
    ).all()

def _submissions(session: Session, activities: List[FarmActivity]) -> List[Submission]:
    names = profile_names(session, [a.user_id for a in activities])
    return [
        Submission(
            id=a.id,
            farmer_id=a.user_id,
            farmer_name=names.get(a.user_id, "Unknown"),
            activity_type=a.activity_type,
            activity_date=a.activity_date,
            sync_status=a.sync_status,
            farmer_confirmation=a.farmer_confirmation,
        )
        for a in activities
    ]

@router.get("/dashboard")
def dashboard(current_user: User = Depends(require_extension), session: Session = Depends(get_session)):
    collected = _collected_by(session, current_user)
    return {
        "submissions": len(collected),
        "pending_approvals": sum(1 for a in collected if a.farmer_confirmation == FarmerConfirmation.PENDING),
        "pending_sync": pending_sync_count(collected),
        "farmers": len(roster(session)),
    }

@router.get("/farmers", response_model=List[RosterEntry])
def list_farmers(q: Optional[str] = None, current_user: User = Depends(require_extension), session: Session = Depends(get_session)):
    return roster(session, q)

@router.get("/farmers/{user_id}", response_model=RosterEntry)
def get_farmer(user_id: int, current_user: User = Depends(require_extension), session: Session = Depends(get_session)):
    get_farmer_or_404(session, user_id)
    for entry in roster(session):
        if entry.id == user_id:
            return entry
    raise HTTPException(status_code=404, detail="Farmer not found")

@router.get("/farmers/{user_id}/fields", response_model=List[FieldRead])
def farmer_fields(user_id: int, current_user: User = Depends(require_extension), session: Session = Depends(get_session)):
    get_farmer_or_404(session, user_id)
    return session.exec(select(FarmField).where(FarmField.user_id == user_id)).all()

@router.post("/farmers/{user_id}/activities", response_model=ActivityRead)
def add_activity_for_farmer(
    user_id: int,
    data: ActivityCreate,
    current_user: User = Depends(require_extension),
    session: Session = Depends(get_session)
):
    farmer = get_farmer_or_404(session, user_id)
    try:
        return create_collected_activity(session, current_user, farmer, data)
    except ActivityError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/submissions", response_model=List[Submission])
def my_submissions(
    q: Optional[str] = None,
    activity_type: Optional[ActivityType] = None,
    current_user: User = Depends(require_extension),
    session: Session = Depends(get_session)
):
    submissions = _submissions(session, _collected_by(session, current_user))
    if q:
        submissions = [s for s in submissions if contains(s.farmer_name, q) or contains(s.activity_type.value, q)]
    if activity_type:
        submissions = [s for s in submissions if s.activity_type == activity_type]
    return submissions

@router.get("/pending-approvals", response_model=List[Submission])
def pending_approvals(current_user: User = Depends(require_extension), session: Session = Depends(get_session)):
    """
    Collected entries with the farmer's confirmation state
    (pending, accepted or edited).
    """
    return _submissions(session, _collected_by(session, current_user))
