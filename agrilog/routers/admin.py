import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select, func
from ..database import get_session
from ..models import (
    User, UserRole, Role, InstitutionProfile, FarmActivity, AccessRequest, AccessStatus, AuditLog,
)
from ..schemas import (
    AdminUserCreate, UserRead, ActivityRead, AccessRequestRead, AuditLogRead, SettingsUpdate,
)
from ..dependencies import require_admin
from ..analytics import data_quality, monthly_counts
from ..system_settings import read_settings, write_settings
from ..validators import contains
from .auth import create_user, user_read
from .. import access, audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

def _count_role(session: Session, role: Role) -> int:
    return session.exec(select(func.count()).select_from(UserRole).where(UserRole.role == role)).one()

def _users_with_role(session: Session, role: Role) -> List[User]:
    return session.exec(
        select(User).join(UserRole, UserRole.user_id == User.id).where(UserRole.role == role)
    ).all()

@router.get("/stats")
def stats(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    access.expire_stale(session)
    return {
        "farmers": _count_role(session, Role.FARMER),
        "institutions": _count_role(session, Role.INSTITUTION),
        "extension_workers": _count_role(session, Role.ENUMERATOR),
        "activities": session.exec(select(func.count()).select_from(FarmActivity)).one(),
        "pending_requests": session.exec(
            select(func.count()).select_from(AccessRequest).where(AccessRequest.status == AccessStatus.PENDING)
        ).one(),
    }

# --- Users ---

@router.get("/users", response_model=List[UserRead])
def list_users(q: Optional[str] = None, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    users = session.exec(select(User).order_by(User.created_at.desc(), User.id.desc())).all()
    if q:
        users = [
            u for u in users
            if contains(u.email, q) or (u.profile is not None and contains(u.profile.full_name, q))
        ]
    return [user_read(u) for u in users]

@router.post("/users", response_model=UserRead)
def add_user(data: AdminUserCreate, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    user = create_user(session, data, data.role_level)
    session.flush()
    audit.record(session, current_user, "user.create", "user", user.id, details=data.role.value)
    session.commit()
    session.refresh(user)
    logger.info("Admin %s created %s user %s", current_user.id, data.role.value, user.id)
    return user_read(user)

def _set_active(session: Session, admin: User, user_id: int, active: bool) -> UserRead:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not active and user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user.is_active = active
    session.add(user)
    audit.record(session, admin, "user.activate" if active else "user.deactivate", "user", user.id)
    session.commit()
    session.refresh(user)
    return user_read(user)

@router.post("/users/{user_id}/deactivate", response_model=UserRead)
def deactivate_user(user_id: int, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return _set_active(session, current_user, user_id, False)

@router.post("/users/{user_id}/activate", response_model=UserRead)
def activate_user(user_id: int, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return _set_active(session, current_user, user_id, True)

@router.get("/extension-workers")
def extension_workers(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    workers = _users_with_role(session, Role.ENUMERATOR)
    counts = {}
    if workers:
        for a in session.exec(
            select(FarmActivity).where(FarmActivity.collected_by.in_([w.id for w in workers]))
        ).all():
            counts[a.collected_by] = counts.get(a.collected_by, 0) + 1
    return [
        {
            "id": w.id,
            "email": w.email,
            "full_name": w.profile.full_name if w.profile else None,
            "village_location": w.profile.village_location if w.profile else None,
            "is_active": w.is_active,
            "submissions": counts.get(w.id, 0),
        }
        for w in workers
    ]

@router.get("/organizations")
def organizations(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    institutions = _users_with_role(session, Role.INSTITUTION)
    ids = [u.id for u in institutions]
    profiles, requests = {}, {}
    if ids:
        profiles = {
            p.user_id: p for p in session.exec(
                select(InstitutionProfile).where(InstitutionProfile.user_id.in_(ids))
            ).all()
        }
        for r in session.exec(select(AccessRequest).where(AccessRequest.institution_id.in_(ids))).all():
            requests[r.institution_id] = requests.get(r.institution_id, 0) + 1

    result = []
    for u in institutions:
        p = profiles.get(u.id)
        result.append({
            "id": u.id,
            "email": u.email,
            "organization_name": p.organization_name if p else None,
            "institution_type": p.institution_type if p else None,
            "country_region": p.country_region if p else None,
            "is_active": u.is_active,
            "access_requests": requests.get(u.id, 0),
        })
    return result

# --- Oversight ---

@router.get("/activities", response_model=List[ActivityRead])
def recent_activities(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return session.exec(
        select(FarmActivity).order_by(FarmActivity.created_at.desc(), FarmActivity.id.desc()).limit(50)
    ).all()

@router.get("/access-requests", response_model=List[AccessRequestRead])
def all_access_requests(
    status: Optional[AccessStatus] = None,
    current_user: User = Depends(require_admin),
    session: Session = Depends(get_session)
):
    access.expire_stale(session)
    query = select(AccessRequest)
    if status:
        query = query.where(AccessRequest.status == status)
    requests = session.exec(query.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())).all()
    return access.request_reads(session, requests)

@router.post("/access-requests/{request_id}/revoke", response_model=AccessRequestRead)
def revoke_access_request(request_id: int, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    access.expire_stale(session)
    request = session.get(AccessRequest, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Access request not found")
    try:
        request = access.admin_revoke(session, request, current_user)
    except access.AccessTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return access.request_reads(session, [request])[0]

@router.get("/audit-logs", response_model=List[AuditLogRead])
def audit_logs(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return session.exec(select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(50)).all()

@router.get("/data-quality")
def quality(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return data_quality(session.exec(select(FarmActivity)).all())

@router.get("/reports")
def reports(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    users = session.exec(select(User.created_at)).all()
    activities = session.exec(select(FarmActivity.activity_date)).all()
    return {
        "user_growth": monthly_counts(users),
        "activity_volume": monthly_counts(activities),
    }

# --- Settings ---

@router.get("/settings")
def get_settings(current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    return read_settings(session)

@router.put("/settings")
def update_settings(data: SettingsUpdate, current_user: User = Depends(require_admin), session: Session = Depends(get_session)):
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if changes:
        audit.record(session, current_user, "settings.update", details=", ".join(sorted(changes)))
    return write_settings(session, changes)
