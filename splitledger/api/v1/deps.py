import logging
from typing import Callable, TypeVar
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
from splitledger.config import get_settings
from splitledger.db.database import get_db
from splitledger.errors import AuthorizationError, ContentionError
from splitledger.events.publisher import EventPublisher
from splitledger.models.groups import Group
from splitledger.services.auth.jwt_handler import get_current_user
from splitledger.services.group_service import get_group
from splitledger.services.membership import SqlMembershipOracle

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_current_user_id(access_token: str = Header(..., description="Access token (without Bearer)")) -> str:
    """Extract current user ID from JWT token"""
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "", 1)
    user_id = get_current_user(access_token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def get_event_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher


def get_group_or_404(group_id: str, db: Session = Depends(get_db)) -> Group:
    group = get_group(db, group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


def require_member(db: Session, group_id: str, user_id: str) -> None:
    if not SqlMembershipOracle(db).is_member(group_id, user_id):
        raise AuthorizationError("Not a member of this group")


def with_contention_retry(operation: Callable[[], T], retries: int = None) -> T:
    """
    Run a ledger mutation, retrying it when it lost a lock race.

    The ledger rolls back before raising ContentionError, so a retry starts
    from a clean session. Once retries are exhausted the error propagates and
    the client gets a 409.
    """
    if retries is None:
        retries = get_settings().contention_retries
    attempt = 0
    while True:
        try:
            return operation()
        except ContentionError:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning(f"Ledger contention, retrying ({attempt}/{retries})")
