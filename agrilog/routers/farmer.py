import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlmodel import Session, select
from ..database import get_session
from ..models import (
    User, FarmField, FarmActivity, FarmerConfirmation, ActivityType,
    DataPermission, AccessRequest, AccessStatus,
)
from ..schemas import (
    FieldCreate, FieldRead, ActivityCreate, ActivityUpdate, ActivityRead,
    FarmerDashboard, SeasonSummary, PermissionCreate, PermissionRead, AccessRequestRead,
)
from ..dependencies import require_farmer
from ..activities import create_farmer_activity, check_field, pending_sync_count, ActivityError
from ..analytics import season_summary
from ..exports import activities_to_csv, activities_to_pdf
from ..validators import contains, as_utc
from .. import access, audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/farmer", tags=["farmer"])

def _own_activity(session: Session, farmer: User, activity_id: int) -> FarmActivity:
    activity = session.get(FarmActivity, activity_id)
    if not activity or activity.user_id != farmer.id:
        raise HTTPException(status_code=404, detail="Activity not found")
    return activity

def _own_request(session: Session, farmer: User, request_id: int) -> AccessRequest:
    request = session.get(AccessRequest, request_id)
    if not request or request.farmer_id != farmer.id:
        raise HTTPException(status_code=404, detail="Access request not found")
    return request

def _my_activities(session: Session, farmer: User) -> List[FarmActivity]:
    return session.exec(
        select(FarmActivity)
        .where(FarmActivity.user_id == farmer.id)
        .order_by(FarmActivity.activity_date.desc())
    ).all()

@router.get("/dashboard", response_model=FarmerDashboard)
def dashboard(current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    recent = session.exec(
        select(FarmActivity)
        .where(FarmActivity.user_id == current_user.id)
        .order_by(FarmActivity.activity_date.desc())
        .limit(10)
    ).all()
    return FarmerDashboard(recent_activities=recent, pending_sync=pending_sync_count(recent))

# --- Fields ---

@router.get("/fields", response_model=List[FieldRead])
def list_fields(current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return session.exec(select(FarmField).where(FarmField.user_id == current_user.id)).all()

@router.post("/fields", response_model=FieldRead)
def create_field(data: FieldCreate, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    field = FarmField(user_id=current_user.id, **data.model_dump())
    session.add(field)
    session.commit()
    session.refresh(field)
    return field

# --- Activities ---

@router.post("/activities", response_model=ActivityRead)
def create_activity(data: ActivityCreate, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    try:
        return create_farmer_activity(session, current_user, data)
    except ActivityError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/activities", response_model=List[ActivityRead])
def list_activities(
    q: Optional[str] = None,
    crop: Optional[str] = None,
    activity_type: Optional[ActivityType] = None,
    current_user: User = Depends(require_farmer),
    session: Session = Depends(get_session)
):
    activities = _my_activities(session, current_user)
    if q:
        activities = [
            a for a in activities
            if contains(a.activity_type.value, q) or contains(a.crop, q) or contains(a.notes, q)
        ]
    if crop:
        activities = [a for a in activities if a.crop == crop]
    if activity_type:
        activities = [a for a in activities if a.activity_type == activity_type]
    return activities

@router.get("/activities/{activity_id}", response_model=ActivityRead)
def get_activity(activity_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return _own_activity(session, current_user, activity_id)

@router.patch("/activities/{activity_id}", response_model=ActivityRead)
def update_activity(
    activity_id: int,
    update_data: ActivityUpdate,
    current_user: User = Depends(require_farmer),
    session: Session = Depends(get_session)
):
    activity = _own_activity(session, current_user, activity_id)
    changes = update_data.model_dump(exclude_unset=True)
    if "field_id" in changes:
        try:
            check_field(session, current_user.id, changes["field_id"])
        except ActivityError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if "activity_date" in changes:
        if changes["activity_date"] is None:
            raise HTTPException(status_code=400, detail="activity_date cannot be cleared")
        changes["activity_date"] = as_utc(changes["activity_date"])

    lat = changes.get("location_lat", activity.location_lat)
    lng = changes.get("location_lng", activity.location_lng)
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="location_lat and location_lng must be set or cleared together")

    for key, value in changes.items():
        setattr(activity, key, value)

    # Changing an extension worker's entry counts as the farmer's correction
    if changes and activity.collected_by is not None:
        activity.farmer_confirmation = FarmerConfirmation.EDITED

    session.add(activity)
    audit.record(session, current_user, "activity.update", "farm_activity", activity.id)
    session.commit()
    session.refresh(activity)
    return activity

@router.post("/activities/{activity_id}/confirm", response_model=ActivityRead)
def confirm_activity(activity_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    activity = _own_activity(session, current_user, activity_id)
    if activity.collected_by is None:
        raise HTTPException(status_code=409, detail="Only entries collected by an extension worker need confirmation")
    activity.farmer_confirmation = FarmerConfirmation.ACCEPTED
    session.add(activity)
    audit.record(session, current_user, "activity.confirm", "farm_activity", activity.id)
    session.commit()
    session.refresh(activity)
    return activity

@router.get("/summary", response_model=SeasonSummary)
def get_season_summary(current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return season_summary(_my_activities(session, current_user))

@router.get("/export")
def export_records(
    format: str = Query("csv", pattern="^(csv|pdf)$"),
    current_user: User = Depends(require_farmer),
    session: Session = Depends(get_session)
):
    activities = _my_activities(session, current_user)
    if format == "pdf":
        name = current_user.profile.full_name if current_user.profile else current_user.email
        content = activities_to_pdf(activities, title=f"Farm Records - {name}")
        return Response(
            content, media_type="application/pdf",
            headers={"Content-Disposition": "attachment; filename=farm_records.pdf"},
        )
    return Response(
        activities_to_csv(activities), media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=farm_records.csv"},
    )

# --- Share permissions ---

@router.get("/permissions", response_model=List[PermissionRead])
def list_permissions(current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return session.exec(
        select(DataPermission)
        .where(DataPermission.user_id == current_user.id)
        .order_by(DataPermission.created_at.desc(), DataPermission.id.desc())
    ).all()

@router.post("/permissions", response_model=PermissionRead)
def grant_permission(data: PermissionCreate, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    permission = DataPermission(user_id=current_user.id, is_active=True, **data.model_dump())
    session.add(permission)
    session.flush()
    audit.record(session, current_user, "permission.grant", "data_permission", permission.id,
                 details=f"{data.shared_with_type.value}:{data.shared_with_email}")
    session.commit()
    session.refresh(permission)
    return permission

@router.post("/permissions/{permission_id}/revoke", response_model=PermissionRead)
def revoke_permission(permission_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    permission = session.get(DataPermission, permission_id)
    if not permission or permission.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Permission not found")
    permission.is_active = False
    session.add(permission)
    audit.record(session, current_user, "permission.revoke", "data_permission", permission.id)
    session.commit()
    session.refresh(permission)
    return permission

# --- Access requests addressed to me ---

@router.get("/access-requests", response_model=List[AccessRequestRead])
def list_access_requests(
    status: Optional[AccessStatus] = None,
    current_user: User = Depends(require_farmer),
    session: Session = Depends(get_session)
):
    access.expire_stale(session)
    query = select(AccessRequest).where(AccessRequest.farmer_id == current_user.id)
    if status:
        query = query.where(AccessRequest.status == status)
    requests = session.exec(query.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())).all()
    return access.request_reads(session, requests)

def _transition(session: Session, farmer: User, request_id: int, action) -> AccessRequestRead:
    access.expire_stale(session)
    request = _own_request(session, farmer, request_id)
    try:
        request = action(session, request, farmer)
    except access.AccessTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return access.request_reads(session, [request])[0]

@router.post("/access-requests/{request_id}/approve", response_model=AccessRequestRead)
def approve_request(request_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return _transition(session, current_user, request_id, access.approve)

@router.post("/access-requests/{request_id}/reject", response_model=AccessRequestRead)
def reject_request(request_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return _transition(session, current_user, request_id, access.reject)

@router.post("/access-requests/{request_id}/revoke", response_model=AccessRequestRead)
def revoke_request(request_id: int, current_user: User = Depends(require_farmer), session: Session = Depends(get_session)):
    return _transition(session, current_user, request_id, access.revoke)
