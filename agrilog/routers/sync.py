import logging
from fastapi import APIRouter, Depends
from pydantic import ValidationError
from sqlmodel import Session
from ..database import get_session
from ..models import User, Role, SyncStatus
from ..schemas import ActivityCreate, SyncRequest, SyncResult, SyncFailure, QueuedEntry
from ..dependencies import require_roles
from ..activities import (
    create_farmer_activity, create_collected_activity, find_by_client_ref, get_farmer, ActivityError,
)
from .. import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])

def _sync_entry(session: Session, user: User, entry: QueuedEntry):
    """Inserts one queued entry, raising ActivityError when it cannot be stored."""
    payload = dict(entry.data)
    target_id = payload.pop("user_id", None)

    if user.role == Role.FARMER:
        if target_id is not None and target_id != user.id:
            raise ActivityError("Farmers can only sync their own activities")
        farmer = user
    else:
        if target_id is None:
            raise ActivityError("Entry does not name a farmer")
        farmer = get_farmer(session, target_id)
        if not farmer:
            raise ActivityError("Farmer not found")

    if find_by_client_ref(session, farmer.id, entry.id):
        return

    try:
        data = ActivityCreate(**payload)
    except ValidationError as e:
        raise ActivityError(f"Invalid activity: {e.errors()[0]['msg']}")
    data.sync_status = SyncStatus.SYNCED

    if user.role == Role.FARMER:
        create_farmer_activity(session, farmer, data, client_ref=entry.id)
    else:
        create_collected_activity(session, user, farmer, data, client_ref=entry.id)

@router.post("/activities", response_model=SyncResult)
def sync_activities(
    request: SyncRequest,
    current_user: User = Depends(require_roles(Role.FARMER, Role.ENUMERATOR)),
    session: Session = Depends(get_session)
):
    """
    Replays queued offline entries one at a time. Each entry is committed
    on its own, so one bad entry does not hold back the others.
    """
    result = SyncResult()
    for entry in request.entries:
        try:
            _sync_entry(session, current_user, entry)
        except ActivityError as e:
            session.rollback()
            result.failed.append(SyncFailure(id=entry.id, error=str(e)))
            continue
        result.synced.append(entry.id)

    audit.record(session, current_user, "queue.sync",
                 details=f"synced={len(result.synced)} failed={len(result.failed)}")
    session.commit()
    logger.info("User %s synced %d entries, %d failed", current_user.id, len(result.synced), len(result.failed))
    return result
