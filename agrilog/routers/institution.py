import logging
from datetime import timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlmodel import Session, select
from ..database import get_session
from ..models import (
    User, UserRole, Role, Profile, InstitutionProfile, FarmActivity, AccessRequest, AccessStatus,
)
from ..schemas import (
    InstitutionProfileUpdate, InstitutionProfileRead, AccessRequestCreate, AccessRequestRead,
    ApprovedFarmer, FarmerSearchResult, FarmProfile, ActivityRead,
)
from ..dependencies import require_institution
from ..activities import get_farmer_or_404, profile_names
from ..analytics import institution_report
from ..exports import activities_to_csv, activities_to_pdf
from ..system_settings import get_setting
from ..validators import as_utc, contains, parse_date
from .. import access, audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/institution", tags=["institution"])

def _profile_for(session: Session, user: User) -> InstitutionProfile:
    profile = session.exec(select(InstitutionProfile).where(InstitutionProfile.user_id == user.id)).first()
    if not profile:
        profile = InstitutionProfile(user_id=user.id)
        session.add(profile)
        session.commit()
        session.refresh(profile)
    return profile

def _farmer_profiles(session: Session, farmer_ids) -> dict:
    ids = list(set(farmer_ids))
    if not ids:
        return {}
    return {p.user_id: p for p in session.exec(select(Profile).where(Profile.user_id.in_(ids))).all()}

def _activities_of(session: Session, farmer_ids) -> List[FarmActivity]:
    ids = list(set(farmer_ids))
    if not ids:
        return []
    return session.exec(
        select(FarmActivity)
        .where(FarmActivity.user_id.in_(ids))
        .order_by(FarmActivity.activity_date.desc())
    ).all()

# --- Profile & dashboard ---

@router.get("/profile", response_model=InstitutionProfileRead)
def get_institution_profile(current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    return _profile_for(session, current_user)

@router.put("/profile", response_model=InstitutionProfileRead)
def update_institution_profile(
    data: InstitutionProfileUpdate,
    current_user: User = Depends(require_institution),
    session: Session = Depends(get_session)
):
    profile = _profile_for(session, current_user)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile

@router.get("/dashboard")
def dashboard(current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    access.expire_stale(session)
    requests = session.exec(select(AccessRequest).where(AccessRequest.institution_id == current_user.id)).all()
    return {
        "approved_farmers": len({r.farmer_id for r in requests if r.status == AccessStatus.APPROVED}),
        "pending_requests": sum(1 for r in requests if r.status == AccessStatus.PENDING),
    }

# --- Find farmers & request access ---

@router.get("/farmers/search", response_model=List[FarmerSearchResult])
def find_farmers(
    q: str = "",
    verified_only: bool = False,
    current_user: User = Depends(require_institution),
    session: Session = Depends(get_session)
):
    if not q.strip():
        return []
    q = q.strip()

    access.expire_stale(session)
    farmer_ids = [r.user_id for r in session.exec(select(UserRole).where(UserRole.role == Role.FARMER)).all()]
    profiles = []
    if farmer_ids:
        profiles = session.exec(
            select(Profile).where(Profile.user_id.in_(farmer_ids)).order_by(Profile.full_name)
        ).all()
    profiles = [p for p in profiles if contains(p.full_name, q) or contains(p.village_location, q)][:20]
    ids = [p.user_id for p in profiles]

    statuses = {}
    if ids:
        for r in session.exec(
            select(AccessRequest)
            .where(AccessRequest.institution_id == current_user.id)
            .where(AccessRequest.farmer_id.in_(ids))
            .order_by(AccessRequest.created_at, AccessRequest.id)
        ).all():
            statuses[r.farmer_id] = r.status # latest request wins

    total, verified = {}, {}
    for a in _activities_of(session, ids):
        total[a.user_id] = total.get(a.user_id, 0) + 1
        if a.is_verified:
            verified[a.user_id] = verified.get(a.user_id, 0) + 1

    results = [
        FarmerSearchResult(
            id=p.user_id,
            full_name=p.full_name,
            village_location=p.village_location,
            has_permission=access.has_active_access(session, current_user.id, p.user_id),
            request_status=statuses.get(p.user_id),
            total_entries=total.get(p.user_id, 0),
            verified_entries=verified.get(p.user_id, 0),
        )
        for p in profiles
    ]
    if verified_only:
        results = [r for r in results if r.verified_entries > 0]
    return results

@router.post("/access-requests", response_model=AccessRequestRead)
def request_access(
    data: AccessRequestCreate,
    current_user: User = Depends(require_institution),
    session: Session = Depends(get_session)
):
    get_farmer_or_404(session, data.farmer_id)
    if access.open_request(session, current_user.id, data.farmer_id):
        raise HTTPException(status_code=409, detail="An open access request for this farmer already exists")

    duration = data.duration_days or int(get_setting(session, "default_access_duration_days"))
    request = AccessRequest(
        institution_id=current_user.id,
        farmer_id=data.farmer_id,
        request_reason=data.request_reason,
        access_type=data.access_type,
        duration_days=duration,
        status=AccessStatus.PENDING,
    )
    session.add(request)
    session.flush()
    audit.record(session, current_user, "access_request.create", "access_request", request.id,
                 details=f"farmer={data.farmer_id} type={data.access_type.value}")
    session.commit()
    session.refresh(request)
    logger.info("Institution %s requested access to farmer %s", current_user.id, data.farmer_id)
    return access.request_reads(session, [request])[0]

@router.get("/access-requests", response_model=List[AccessRequestRead])
def list_requests(
    status: Optional[AccessStatus] = None,
    current_user: User = Depends(require_institution),
    session: Session = Depends(get_session)
):
    access.expire_stale(session)
    query = select(AccessRequest).where(AccessRequest.institution_id == current_user.id)
    if status:
        query = query.where(AccessRequest.status == status)
    requests = session.exec(query.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())).all()
    return access.request_reads(session, requests)

@router.post("/access-requests/{request_id}/revoke", response_model=AccessRequestRead)
def revoke_access(request_id: int, current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    access.expire_stale(session)
    request = session.get(AccessRequest, request_id)
    if not request or request.institution_id != current_user.id:
        raise HTTPException(status_code=404, detail="Access request not found")
    try:
        request = access.revoke(session, request, current_user)
    except access.AccessTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return access.request_reads(session, [request])[0]

# --- Consuming approved data ---

@router.get("/approved-farmers", response_model=List[ApprovedFarmer])
def approved_farmers(q: Optional[str] = None, current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    requests = access.active_requests(session, current_user.id)
    profiles = _farmer_profiles(session, [r.farmer_id for r in requests])

    farmers = []
    for r in requests:
        profile = profiles.get(r.farmer_id)
        name = profile.full_name if profile else "Unknown"
        village = profile.village_location if profile else None
        if q and not (contains(name, q) or contains(village, q)):
            continue
        farmers.append(ApprovedFarmer(
            request_id=r.id,
            farmer_id=r.farmer_id,
            full_name=name,
            village_location=village,
            access_type=r.access_type,
            expires_at=r.expires_at,
            days_remaining=access.days_remaining(r.expires_at),
        ))
    return farmers

@router.get("/farm-profiles", response_model=List[FarmProfile])
def farm_profiles(current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    requests = access.active_requests(session, current_user.id, access.VIEW)
    profiles = _farmer_profiles(session, [r.farmer_id for r in requests])
    activities = _activities_of(session, [r.farmer_id for r in requests])

    result = []
    seen = set()
    for r in requests:
        if r.farmer_id in seen:
            continue
        seen.add(r.farmer_id)
        mine = [a for a in activities if a.user_id == r.farmer_id]
        profile = profiles.get(r.farmer_id)
        result.append(FarmProfile(
            farmer_id=r.farmer_id,
            full_name=profile.full_name if profile else "Unknown",
            village_location=profile.village_location if profile else None,
            expires_at=r.expires_at,
            crop_count=len({a.crop for a in mine if a.crop}),
            ai_processed=sum(1 for a in mine if a.ai_summary),
            activities=[ActivityRead.model_validate(a) for a in mine],
        ))
    return result

@router.get("/reports")
def reports(current_user: User = Depends(require_institution), session: Session = Depends(get_session)):
    requests = access.active_requests(session, current_user.id, access.ANALYTICS)
    if not requests:
        raise HTTPException(status_code=403, detail="No farmers have granted analytics access")
    farmer_ids = {r.farmer_id for r in requests}
    activities = _activities_of(session, farmer_ids)
    profiles = list(_farmer_profiles(session, farmer_ids).values())
    return institution_report(activities, profiles)

@router.get("/download")
def download_data(
    format: str = Query("csv", pattern="^(csv|pdf|json)$"),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    crop: Optional[str] = None,
    verified_only: bool = False,
    current_user: User = Depends(require_institution),
    session: Session = Depends(get_session)
):
    requests = access.active_requests(session, current_user.id, access.DOWNLOAD)
    if not requests:
        raise HTTPException(status_code=403, detail="No approved farmers to download data from")

    try:
        start = parse_date(date_from)
        end = parse_date(date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    activities = _activities_of(session, [r.farmer_id for r in requests])
    if start:
        activities = [a for a in activities if as_utc(a.activity_date) >= start]
    if end:
        # A bare date includes the whole day
        if end.hour == end.minute == end.second == end.microsecond == 0:
            end = end + timedelta(days=1) - timedelta(microseconds=1)
        activities = [a for a in activities if as_utc(a.activity_date) <= end]
    if crop:
        activities = [a for a in activities if contains(a.crop, crop)]
    if verified_only:
        activities = [a for a in activities if a.is_verified]

    if not activities:
        raise HTTPException(status_code=404, detail="No data matches your filters")

    names = profile_names(session, [a.user_id for a in activities])
    audit.record(session, current_user, "data.download", details=f"format={format} rows={len(activities)}")
    session.commit()

    if format == "json":
        return [
            dict(ActivityRead.model_validate(a).model_dump(mode="json"), farmer_name=names.get(a.user_id, "Unknown"))
            for a in activities
        ]
    if format == "pdf":
        return Response(
            activities_to_pdf(activities, title="Farmer Activity Data", farmer_names=names),
            media_type="application/pdf",
            headers={"Content-Disposition": "attachment; filename=farmer_data.pdf"},
        )
    return Response(
        activities_to_csv(activities, farmer_names=names),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=farmer_data.csv"},
    )
