"""
Session participation routes.

Participants are redirected into a session's hangout through the session
key link; the hangout app reports back through the callback route.
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.core.errors import AuthenticationError, NotFoundError, PermissionDeniedError
from app.schemas.hangout import HangoutCallback
from app.services.state import UnhangoutState
from app.services.tokens import validate_token
from app.utils.responses import success_response
from app.utils.security import get_state

logger = logging.getLogger(__name__)

router = APIRouter()

def _find_session(state: UnhangoutState, session_key: str):
    session = state.registry.find_session_by_key(session_key)
    if session is None:
        raise NotFoundError("Session not found")
    return session

@router.get("/session/{session_key}")
async def participate(
    session_key: str,
    user_id: str = Query(..., alias="userId"),
    sock_key: str = Query(..., alias="sockKey"),
    state: UnhangoutState = Depends(get_state),
):
    """Redirect the participant to the session's hangout"""
    user = state.registry.get_user(user_id)
    if user is None or not validate_token(user, sock_key):
        raise AuthenticationError("Invalid credentials")

    session = _find_session(state, session_key)
    event = state.registry.owning_event(session)
    if event is not None and not event.sessions_open and not user.is_admin_of(event):
        raise PermissionDeniedError("Sessions are not open yet")

    participation = await state.hangouts.request_participation(session, user)
    if participation.create:
        logger.info(f"Sending user:{user.id} to create a hangout for session:{session.id}")
    target = participation.url + state.hangouts.hangout_query_args(session, user)
    return RedirectResponse(target, status_code=302)

@router.post("/session/hangout/{session_key}")
async def hangout_callback(
    session_key: str,
    message: HangoutCallback,
    state: UnhangoutState = Depends(get_state),
):
    """Loaded, participant and heartbeat reports from the hangout app"""
    session = _find_session(state, session_key)
    result = await state.hangouts.handle_callback(
        session, message.model_dump(exclude_none=True)
    )
    return success_response(message=f"{message.type} recorded", data=result)

@router.get("/h/{short_code}")
async def permalink_session(short_code: str, state: UnhangoutState = Depends(get_state)):
    """Get, or create on first visit, a standalone session"""
    session, effects = state.registry.get_or_create_permalink_session(short_code)
    await state.dispatcher.apply(effects)
    data = session.to_client()
    data["participationLink"] = session.participation_link()
    return success_response(message="Session retrieved successfully", data=data)
