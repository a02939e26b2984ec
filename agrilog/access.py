"""
Status-flag access model between institutions and farmers.

An AccessRequest moves pending -> approved | rejected, and approved ->
expired (by revocation or once expires_at passes). Nothing else is
enforced here: the access type on an approved, unexpired request decides
what an institution may do with that farmer's records.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from sqlmodel import Session, select, or_

from . import audit
from .models import AccessRequest, AccessStatus, AccessType, InstitutionProfile, Profile, User, utcnow
from .schemas import AccessRequestRead
from .validators import as_utc

logger = logging.getLogger(__name__)

VIEW = "view"
DOWNLOAD = "download"
ANALYTICS = "analytics"

CAPABILITIES = {
    AccessType.VIEW: {VIEW},
    AccessType.VIEW_DOWNLOAD: {VIEW, DOWNLOAD},
    AccessType.VIEW_DOWNLOAD_ANALYTICS: {VIEW, DOWNLOAD, ANALYTICS},
}

class AccessTransitionError(Exception):
    pass

def allows(access_type: AccessType, capability: str) -> bool:
    return capability in CAPABILITIES.get(access_type, set())

def expire_stale(session: Session) -> int:
    """
    Marks approved requests whose expiry has passed as expired.
    Runs lazily whenever requests are read.
    """
    now = utcnow()
    stale = session.exec(
        select(AccessRequest)
        .where(AccessRequest.status == AccessStatus.APPROVED)
        .where(AccessRequest.expires_at != None)  # noqa: E711
        .where(AccessRequest.expires_at <= now)
    ).all()
    for request in stale:
        request.status = AccessStatus.EXPIRED
        session.add(request)
        audit.record(session, None, "access_request.expire", "access_request", request.id)
    if stale:
        session.commit()
        logger.info("Expired %d access requests", len(stale))
    return len(stale)

def _active_clause(query, now: datetime):
    return (
        query.where(AccessRequest.status == AccessStatus.APPROVED)
        .where(or_(AccessRequest.expires_at == None, AccessRequest.expires_at > now))  # noqa: E711
    )

def active_requests(session: Session, institution_id: int, capability: Optional[str] = None) -> List[AccessRequest]:
    """
    Approved, unexpired requests of one institution, optionally limited to
    those whose access type grants `capability`.
    """
    expire_stale(session)
    query = _active_clause(select(AccessRequest), utcnow()).where(
        AccessRequest.institution_id == institution_id
    )
    requests = session.exec(query.order_by(AccessRequest.created_at.desc())).all()
    if capability:
        requests = [r for r in requests if allows(r.access_type, capability)]
    return requests

def has_active_access(session: Session, institution_id: int, farmer_id: int, capability: str = VIEW) -> bool:
    query = _active_clause(select(AccessRequest), utcnow()).where(
        AccessRequest.institution_id == institution_id,
        AccessRequest.farmer_id == farmer_id,
    )
    return any(allows(r.access_type, capability) for r in session.exec(query).all())

def open_request(session: Session, institution_id: int, farmer_id: int) -> Optional[AccessRequest]:
    """A pending or still-valid approved request, if any."""
    expire_stale(session)
    return session.exec(
        select(AccessRequest)
        .where(AccessRequest.institution_id == institution_id)
        .where(AccessRequest.farmer_id == farmer_id)
        .where(AccessRequest.status.in_([AccessStatus.PENDING, AccessStatus.APPROVED]))
    ).first()

def approve(session: Session, request: AccessRequest, actor: User) -> AccessRequest:
    if request.status != AccessStatus.PENDING:
        raise AccessTransitionError(f"Cannot approve a {request.status.value} request")
    now = utcnow()
    request.status = AccessStatus.APPROVED
    request.responded_at = now
    request.expires_at = now + timedelta(days=request.duration_days)
    return _save(session, request, actor, "access_request.approve")

def reject(session: Session, request: AccessRequest, actor: User) -> AccessRequest:
    if request.status != AccessStatus.PENDING:
        raise AccessTransitionError(f"Cannot reject a {request.status.value} request")
    request.status = AccessStatus.REJECTED
    request.responded_at = utcnow()
    return _save(session, request, actor, "access_request.reject")

def revoke(session: Session, request: AccessRequest, actor: User) -> AccessRequest:
    """Ends an approved request early."""
    if request.status != AccessStatus.APPROVED:
        raise AccessTransitionError(f"Cannot revoke a {request.status.value} request")
    request.status = AccessStatus.EXPIRED
    request.expires_at = utcnow()
    return _save(session, request, actor, "access_request.revoke")

def admin_revoke(session: Session, request: AccessRequest, actor: User) -> AccessRequest:
    if request.status == AccessStatus.PENDING:
        request.status = AccessStatus.REJECTED
        request.responded_at = utcnow()
        return _save(session, request, actor, "access_request.admin_reject")
    return revoke(session, request, actor)

def _save(session: Session, request: AccessRequest, actor: User, action: str) -> AccessRequest:
    session.add(request)
    audit.record(session, actor, action, "access_request", request.id)
    session.commit()
    session.refresh(request)
    logger.info("Access request %s -> %s", request.id, request.status.value)
    return request

def days_remaining(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if expires_at is None:
        return None
    now = as_utc(now) or utcnow()
    return max(0, (as_utc(expires_at) - now).days)

def request_reads(session: Session, requests: List[AccessRequest]) -> list:
    """
    Attaches farmer and institution display names to access requests.
    """
    farmer_ids = {r.farmer_id for r in requests}
    institution_ids = {r.institution_id for r in requests}
    farmers = {}
    if farmer_ids:
        farmers = {
            p.user_id: p.full_name
            for p in session.exec(select(Profile).where(Profile.user_id.in_(farmer_ids))).all()
        }
    institutions = {}
    if institution_ids:
        institutions = {
            p.user_id: p.organization_name
            for p in session.exec(
                select(InstitutionProfile).where(InstitutionProfile.user_id.in_(institution_ids))
            ).all()
        }

    reads = []
    for r in requests:
        read = AccessRequestRead.model_validate(r, from_attributes=True)
        read.farmer_name = farmers.get(r.farmer_id, "Unknown")
        read.institution_name = institutions.get(r.institution_id)
        reads.append(read)
    return reads
