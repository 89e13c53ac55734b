"""
Gateway authentication for EvenTotem.

The identity gateway in front of the service authenticates users and
forwards the user id in ``X-Actor-Id``. The header is only trusted when the
request also carries a valid ``X-API-Key``.
"""

import hmac
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from core.config import get_settings
from core.errors import AuthenticationRequired
from models.user import User
from services.permissions import Actor

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
ACTOR_HEADER = "X-Actor-Id"


def verify_api_key(api_key: Optional[str]) -> bool:
    """
    Check a gateway key against API_KEYS.

    With no key configured the check is disabled (local development).
    """
    valid_keys = get_settings().get_api_keys()
    if not valid_keys:
        logger.warning("API_KEYS is empty, trusting actor headers without a gateway key")
        return True

    if not api_key:
        return False
    return any(hmac.compare_digest(api_key.encode(), key.encode()) for key in valid_keys)


def resolve_actor(request: Request, db: Session) -> Optional[Actor]:
    """
    Resolve the acting user of a request.

    Args:
        request: Incoming request
        db: Database session

    Returns:
        Optional[Actor]: The actor, or None for anonymous requests

    Raises:
        AuthenticationRequired: If the actor header comes without a valid
            API key, or names an unknown or disabled user
    """
    actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()
    if not actor_id:
        return None

    where = f"{request.method} {request.url.path}"
    if not verify_api_key(request.headers.get(API_KEY_HEADER)):
        logger.warning(f"Rejected gateway key on {where}")
        raise AuthenticationRequired("Invalid API key", field=API_KEY_HEADER)

    user = db.get(User, actor_id)
    if user is None or not user.is_active:
        logger.warning(f"Actor {actor_id} unknown or disabled on {where}")
        raise AuthenticationRequired("Unknown user", field=ACTOR_HEADER)

    return Actor.from_user(user)
