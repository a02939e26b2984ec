import logging
import os
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from sqlmodel import Session, select
from ..database import get_session
from ..models import User, FarmActivity, Evidence, EvidenceKind
from ..schemas import ActivityRead, EvidenceRead
from ..dependencies import get_current_user
from ..activities import can_view, can_attach_evidence
from .. import config, audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activities", tags=["activities"])

def _visible_activity(session: Session, user: User, activity_id: int) -> FarmActivity:
    activity = session.get(FarmActivity, activity_id)
    if not activity or not can_view(session, user, activity):
        raise HTTPException(status_code=404, detail="Activity not found")
    return activity

@router.get("/{activity_id}", response_model=ActivityRead)
def get_activity(activity_id: int, current_user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    return _visible_activity(session, current_user, activity_id)

@router.get("/{activity_id}/evidence", response_model=List[EvidenceRead])
def list_evidence(activity_id: int, current_user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    _visible_activity(session, current_user, activity_id)
    return session.exec(
        select(Evidence).where(Evidence.activity_id == activity_id).order_by(Evidence.created_at, Evidence.id)
    ).all()

@router.post("/{activity_id}/evidence", response_model=EvidenceRead)
async def upload_evidence(
    activity_id: int,
    kind: EvidenceKind = Form(...),
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    activity = session.get(FarmActivity, activity_id)
    if not activity or not can_view(session, current_user, activity):
        raise HTTPException(status_code=404, detail="Activity not found")
    if not can_attach_evidence(current_user, activity):
        raise HTTPException(status_code=403, detail="Only the farmer or the collecting worker can add evidence")

    evidence = Evidence(activity_id=activity.id, kind=kind, uploaded_by=current_user.id)
    if kind == EvidenceKind.TEXT:
        if not text or not text.strip():
            raise HTTPException(status_code=400, detail="Text evidence needs a text value")
        evidence.text = text.strip()
    else:
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail=f"{kind.value} evidence needs a file")
        content = await file.read()
        directory = os.path.join(config.UPLOAD_DIR, str(activity.id))
        os.makedirs(directory, exist_ok=True)
        stored_name = f"{uuid.uuid4().hex}_{os.path.basename(file.filename)}"
        path = os.path.join(directory, stored_name)
        with open(path, "wb") as f:
            f.write(content)
        evidence.file_name = file.filename
        evidence.file_path = path
        evidence.content_type = file.content_type
        evidence.text = text

    session.add(evidence)
    session.flush()
    audit.record(session, current_user, "evidence.add", "evidence", evidence.id, details=kind.value)
    session.commit()
    session.refresh(evidence)
    logger.info("Stored %s evidence %s for activity %s", kind.value, evidence.id, activity.id)
    return evidence
