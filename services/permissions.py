"""
Permission evaluation for event mutations.

Decides whether an actor may mutate an event: administrators always may,
the organizer always may, and other users may only when the operation is
not owner-only and they hold an unexpired shared "edit" grant. Expiry is
evaluated here, at check time; expired grants simply stop matching.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.clock import ensure_utc, utcnow
from core.errors import AuthenticationRequired, UnauthorizedAccess
from models.event import PermissionKind


REASON_AUTHENTICATION = "authentication required"
REASON_OWNER_ONLY = "owner-only operation"
REASON_NO_PERMISSION = "no permission"


@dataclass(frozen=True)
class Actor:
    """Authenticated user on whose behalf a request runs."""

    id: str
    name: str
    email: str
    admin: bool = False

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, name=user.name, email=user.email, admin=bool(user.is_admin))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def has_valid_grant(permissions, user_id: str, now: datetime) -> bool:
    """True if ``permissions`` holds an unexpired edit grant for ``user_id``."""
    for permission in permissions or ():
        if permission.user_id != user_id:
            continue
        if PermissionKind(permission.kind) != PermissionKind.EDIT:
            continue
        expires_at = ensure_utc(permission.expires_at)
        if expires_at is None or expires_at > now:
            return True
    return False


def evaluate(event, actor: Optional[Actor], owner_only: bool = False, now: Optional[datetime] = None) -> Decision:
    """
    Decide whether ``actor`` may mutate ``event``.

    Args:
        event: Event with ``organizer_id`` and ``permissions``
        actor: Requesting actor, None for anonymous requests
        owner_only: Restrict the operation to the organizer (and admins)
        now: Instant used for grant expiry, defaults to the current time

    Returns:
        Decision: allowed flag and, when denied, the reason
    """
    if actor is None:
        return Decision(False, REASON_AUTHENTICATION)

    if actor.admin:
        return ALLOW

    if actor.id == event.organizer_id:
        return ALLOW

    if owner_only:
        return Decision(False, REASON_OWNER_ONLY)

    now = ensure_utc(now) if now is not None else utcnow()
    if has_valid_grant(event.permissions, actor.id, now):
        return ALLOW

    return Decision(False, REASON_NO_PERMISSION)


def ensure_can_mutate(event, actor: Optional[Actor], owner_only: bool = False, now: Optional[datetime] = None) -> None:
    """
    Raise unless ``evaluate`` allows the operation.

    Raises:
        AuthenticationRequired: If there is no actor
        UnauthorizedAccess: With the evaluator's reason as message
    """
    decision = evaluate(event, actor, owner_only=owner_only, now=now)
    if not decision.allowed:
        if decision.reason == REASON_AUTHENTICATION:
            raise AuthenticationRequired(decision.reason)
        raise UnauthorizedAccess(decision.reason, field="event")
