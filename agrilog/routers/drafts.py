import logging
from fastapi import APIRouter, Depends, HTTPException, Body
from pydantic import ValidationError
from sqlmodel import Session
from ..database import get_session
from ..models import User, Role, FarmField, ActivityDraft, utcnow
from ..schemas import ActivityCreate, ActivityRead, DraftRead
from ..dependencies import require_roles
from ..activities import (
    create_farmer_activity, create_collected_activity, collected_fallback_summary,
    evidence_types_from_counts, get_farmer, ActivityError,
)
from ..agent.activity_processor import process_farm_activity, context_from_activity
from ..wizard import ActivityWizard, WizardError, WizardStateError, FARMER_FLOW, EXTENSION_FLOW
from .. import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drafts", tags=["drafts"])

require_recorder = require_roles(Role.FARMER, Role.ENUMERATOR)

def _summarize(data: dict, flow: str) -> dict:
    result = process_farm_activity(context_from_activity(data))
    summary = result["summary"]
    if result.get("error") and flow == EXTENSION_FLOW:
        summary = collected_fallback_summary(data.get("activity_type"), data.get("crop"))
    return {"ai_summary": summary, "ai_extracted_data": result["extractedData"]}

def _wizard_for(session: Session, draft: ActivityDraft) -> ActivityWizard:
    def is_farmer(user_id):
        return get_farmer(session, user_id) is not None

    def owns_field(farmer_id, field_id):
        field = session.get(FarmField, field_id)
        return field is not None and field.user_id == farmer_id

    return ActivityWizard(
        draft.flow, draft.step, draft.data,
        is_farmer=is_farmer, owns_field=owns_field, summarize=_summarize,
    )

def _own_draft(session: Session, user: User, draft_id: int) -> ActivityDraft:
    draft = session.get(ActivityDraft, draft_id)
    if not draft or draft.owner_id != user.id:
        raise HTTPException(status_code=404, detail="Draft not found")
    return draft

def _read(draft: ActivityDraft) -> DraftRead:
    wizard = ActivityWizard(draft.flow, draft.step, draft.data)
    return DraftRead(id=draft.id, flow=draft.flow, step=draft.step, steps=wizard.steps, data=draft.data or {})

def _store(session: Session, draft: ActivityDraft, wizard: ActivityWizard) -> DraftRead:
    draft.step = wizard.step
    # JSON columns only notice reassignment
    draft.data = dict(wizard.data)
    draft.updated_at = utcnow()
    session.add(draft)
    session.commit()
    session.refresh(draft)
    return _read(draft)

@router.post("/", response_model=DraftRead)
def start_draft(current_user: User = Depends(require_recorder), session: Session = Depends(get_session)):
    if current_user.role == Role.FARMER:
        flow, data = FARMER_FLOW, {"farmer_id": current_user.id}
    else:
        flow, data = EXTENSION_FLOW, {}
    wizard = ActivityWizard(flow, data=data)
    draft = ActivityDraft(owner_id=current_user.id, flow=flow, step=wizard.step, data=wizard.data)
    session.add(draft)
    session.commit()
    session.refresh(draft)
    return _read(draft)

@router.get("/{draft_id}", response_model=DraftRead)
def get_draft(draft_id: int, current_user: User = Depends(require_recorder), session: Session = Depends(get_session)):
    return _read(_own_draft(session, current_user, draft_id))

@router.post("/{draft_id}/next", response_model=DraftRead)
def next_step(
    draft_id: int,
    payload: dict = Body(default={}),
    current_user: User = Depends(require_recorder),
    session: Session = Depends(get_session)
):
    draft = _own_draft(session, current_user, draft_id)
    wizard = _wizard_for(session, draft)
    try:
        wizard.advance(payload)
    except WizardError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _store(session, draft, wizard)

@router.post("/{draft_id}/back")
def previous_step(draft_id: int, current_user: User = Depends(require_recorder), session: Session = Depends(get_session)):
    draft = _own_draft(session, current_user, draft_id)
    wizard = _wizard_for(session, draft)
    if wizard.back() is None:
        session.delete(draft)
        session.commit()
        return {"closed": True}
    return _store(session, draft, wizard)

@router.post("/{draft_id}/save", response_model=ActivityRead)
def save_draft(draft_id: int, current_user: User = Depends(require_recorder), session: Session = Depends(get_session)):
    draft = _own_draft(session, current_user, draft_id)
    wizard = _wizard_for(session, draft)
    try:
        data = ActivityCreate(**wizard.activity_payload())
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        if draft.flow == EXTENSION_FLOW:
            farmer = get_farmer(session, wizard.data.get("farmer_id"))
            if not farmer:
                raise HTTPException(status_code=400, detail="Select a registered farmer")
            activity = create_collected_activity(
                session, current_user, farmer, data,
                evidence_types=evidence_types_from_counts(wizard.data),
            )
        else:
            activity = create_farmer_activity(session, current_user, data)
    except ActivityError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session.delete(draft)
    audit.record(session, current_user, "draft.save", "farm_activity", activity.id)
    session.commit()
    session.refresh(activity)
    logger.info("Draft %s saved as activity %s", draft_id, activity.id)
    return activity
