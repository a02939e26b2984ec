import logging
from typing import List, Optional
from fastapi import HTTPException
from sqlmodel import Session, select

from . import audit
from .access import has_active_access
from .agent.activity_processor import process_farm_activity, context_from_activity
from .models import (
    User, Role, Profile, FarmField, FarmActivity, FarmerConfirmation, SyncStatus, utcnow,
)
from .schemas import ActivityCreate
from .validators import as_utc

logger = logging.getLogger(__name__)

EXTENSION_SUFFIX = " — Collected by Extension Worker (Verified Source)"

class ActivityError(ValueError):
    """Business-rule violation while building an activity."""

def get_farmer(session: Session, user_id: int) -> Optional[User]:
    user = session.get(User, user_id)
    if not user or user.role != Role.FARMER:
        return None
    return user

def get_farmer_or_404(session: Session, user_id: int) -> User:
    farmer = get_farmer(session, user_id)
    if not farmer:
        raise HTTPException(status_code=404, detail="Farmer not found")
    return farmer

def check_field(session: Session, farmer_id: int, field_id: Optional[int]):
    if field_id is None:
        return
    field = session.get(FarmField, field_id)
    if not field or field.user_id != farmer_id:
        raise ActivityError("Field does not belong to this farmer")

def _row_from(data: ActivityCreate, farmer_id: int) -> FarmActivity:
    return FarmActivity(
        user_id=farmer_id,
        activity_type=data.activity_type,
        activity_date=as_utc(data.activity_date) or utcnow(),
        field_id=data.field_id,
        crop=data.crop or None,
        notes=data.notes or None,
        inputs_used=data.inputs_used or None,
        yield_estimate=data.yield_estimate or None,
        location_lat=data.location_lat,
        location_lng=data.location_lng,
        sync_status=data.sync_status,
    )

def create_farmer_activity(
    session: Session,
    farmer: User,
    data: ActivityCreate,
    client_ref: Optional[str] = None,
) -> FarmActivity:
    """
    Saves an activity the farmer logged themself.
    The AI summary is computed here when the client did not send one.
    """
    check_field(session, farmer.id, data.field_id)

    activity = _row_from(data, farmer.id)
    if data.ai_summary:
        activity.ai_summary = data.ai_summary
        activity.ai_extracted_data = data.ai_extracted_data or {}
    else:
        result = process_farm_activity(context_from_activity(data.model_dump()))
        activity.ai_summary = result["summary"]
        activity.ai_extracted_data = result["extractedData"]
    activity.client_ref = client_ref

    session.add(activity)
    session.flush()
    audit.record(session, farmer, "activity.create", "farm_activity", activity.id)
    session.commit()
    session.refresh(activity)
    return activity

def collected_fallback_summary(activity_type: str, crop: Optional[str]) -> str:
    return f"{activity_type} activity for {crop or 'crop'}. Collected by extension worker - verified source."

def create_collected_activity(
    session: Session,
    worker: User,
    farmer: User,
    data: ActivityCreate,
    evidence_types: Optional[List[str]] = None,
    client_ref: Optional[str] = None,
) -> FarmActivity:
    """
    Saves an activity an extension worker recorded on a farmer's behalf.
    These entries are verified and wait for the farmer's confirmation.
    """
    check_field(session, farmer.id, data.field_id)

    activity = _row_from(data, farmer.id)
    activity_type = data.activity_type.value

    summary = data.ai_summary
    extracted = dict(data.ai_extracted_data or {})
    if not summary:
        result = process_farm_activity(context_from_activity(data.model_dump()))
        if result.get("error"):
            summary = collected_fallback_summary(activity_type, data.crop)
        else:
            summary = result["summary"] or "Activity recorded by extension worker."
            extracted.update(result["extractedData"])

    if evidence_types is None:
        evidence_types = evidence_types_from_counts(data.model_dump())

    collector_name = worker.profile.full_name if worker.profile else None
    extracted.update({
        "collected_by": worker.id,
        "collector_name": collector_name,
        "verification_level": "extension_worker",
        "evidence_types": evidence_types,
    })

    activity.ai_summary = summary + EXTENSION_SUFFIX
    activity.ai_extracted_data = extracted
    activity.is_verified = True
    activity.collected_by = worker.id
    activity.farmer_confirmation = FarmerConfirmation.PENDING
    activity.client_ref = client_ref

    session.add(activity)
    session.flush()
    audit.record(
        session, worker, "activity.collect", "farm_activity", activity.id,
        details=f"farmer={farmer.id}",
    )
    session.commit()
    session.refresh(activity)
    return activity

def evidence_types_from_counts(data: dict) -> List[str]:
    types = []
    if data.get("photo_count"):
        types.append("photo")
    if data.get("video_count"):
        types.append("video")
    if data.get("audio_count"):
        types.append("audio")
    if data.get("text_notes"):
        types.append("text")
    return types

def find_by_client_ref(session: Session, farmer_id: int, client_ref: str) -> Optional[FarmActivity]:
    return session.exec(
        select(FarmActivity)
        .where(FarmActivity.user_id == farmer_id)
        .where(FarmActivity.client_ref == client_ref)
    ).first()

def can_view(session: Session, user: User, activity: FarmActivity) -> bool:
    if user.role == Role.ADMIN:
        return True
    if activity.user_id == user.id or activity.collected_by == user.id:
        return True
    if user.role == Role.INSTITUTION:
        return has_active_access(session, user.id, activity.user_id)
    return False

def can_attach_evidence(user: User, activity: FarmActivity) -> bool:
    return activity.user_id == user.id or activity.collected_by == user.id

def profile_names(session: Session, user_ids) -> dict:
    ids = list(set(user_ids))
    if not ids:
        return {}
    profiles = session.exec(select(Profile).where(Profile.user_id.in_(ids))).all()
    return {p.user_id: p.full_name for p in profiles}

def pending_sync_count(activities) -> int:
    return sum(1 for a in activities if a.sync_status == SyncStatus.PENDING)
