from typing import Optional
from sqlmodel import Session

from .models import AuditLog, User

def record(
    session: Session,
    actor: Optional[User],
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    details: Optional[str] = None,
) -> AuditLog:
    """
    Adds an audit row to the caller's session. The caller commits.
    """
    actor_type = "system"
    if actor is not None:
        actor_type = actor.role.value if actor.role else "unknown"

    entry = AuditLog(
        actor_id=actor.id if actor is not None else None,
        actor_type=actor_type,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
    )
    session.add(entry)
    return entry
