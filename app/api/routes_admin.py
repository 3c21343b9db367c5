"""
Admin API routes - requires authentication
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from app.core.errors import NotFoundError, ValidationError
from app.models.effects import Persist
from app.models.user import User
from app.schemas.event import EventAdminChange, EventCreate, EventUpdate, SessionCreate
from app.schemas.hangout import FarmedUrl, Profile, SetPerms, SetSuperuser
from app.services.identity import upsert_user_from_profile
from app.services.state import UnhangoutState
from app.services.tokens import derive_token
from app.utils.responses import success_response
from app.utils.security import get_actor, get_state, require, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter()

def _target_user(state: UnhangoutState, user_id: Optional[str], email: Optional[str]) -> User:
    if user_id:
        user = state.registry.get_user(user_id)
    elif email:
        user = state.registry.find_user_by_email(email)
    else:
        raise ValidationError("A userId or email is required")
    if user is None:
        raise NotFoundError("User not found")
    return user

# Events

@router.post("/events")
async def create_event(
    event_data: EventCreate,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    """Create a new event"""
    require(actor, lambda u: u.has_perm("createEvents") or u.admin, "You may not create events")
    creator = actor
    if creator is None and event_data.creatorId:
        creator = _target_user(state, event_data.creatorId, None)

    event, effects = state.registry.create_event(
        event_data.model_dump(exclude_none=True), creator
    )
    await state.dispatcher.apply(effects)
    return success_response(
        message="Event created successfully",
        data=event.to_client(),
        status_code=201
    )

@router.patch("/events/{event_key}")
async def update_event(
    event_key: str,
    event_data: EventUpdate,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    """Update event details"""
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    effects = state.registry.update_event(event, event_data.model_dump(exclude_none=True))
    await state.dispatcher.apply(effects)
    return success_response(message="Event updated successfully", data=event.to_client())

@router.post("/events/{event_key}/start")
async def start_event(
    event_key: str,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    await state.dispatcher.apply(event.start())
    logger.info(f"event:{event.id} started")
    return success_response(message="Event started", data=event.to_client())

@router.post("/events/{event_key}/stop")
async def stop_event(
    event_key: str,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    await state.dispatcher.apply(event.stop())
    logger.info(f"event:{event.id} stopped")
    return success_response(message="Event stopped", data=event.to_client())

@router.post("/events/{event_key}/sessions")
async def create_session(
    event_key: str,
    session_data: SessionCreate,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    """Add a session to an event"""
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    session, effects = state.registry.create_session(
        event, session_data.model_dump(exclude_none=True)
    )
    await state.dispatcher.apply(effects)
    return success_response(
        message="Session created successfully",
        data=session.to_client(),
        status_code=201
    )

@router.post("/events/{event_key}/admins")
async def add_event_admin(
    event_key: str,
    change: EventAdminChange,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    """Add an admin by user id, or by email for someone who has not logged in"""
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    if change.userId:
        target = _target_user(state, change.userId, None)
    elif change.email:
        target = state.registry.find_user_by_email(change.email) or str(change.email)
    else:
        raise ValidationError("A userId or email is required")
    await state.dispatcher.apply(event.add_admin(target))
    return success_response(message="Admin added", data={"admins": event.admins})

@router.post("/events/{event_key}/admins/remove")
async def remove_event_admin(
    event_key: str,
    change: EventAdminChange,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    event = state.registry.require_event(event_key)
    require(actor, lambda u: u.is_admin_of(event), "You are not an admin of this event")
    target = state.registry.get_user(change.userId) if change.userId else None
    if target is None:
        if not change.email:
            raise ValidationError("A userId or email is required")
        target = state.registry.find_user_by_email(change.email) or str(change.email)
    await state.dispatcher.apply(event.remove_admin(target))
    return success_response(message="Admin removed", data={"admins": event.admins})

# Users

@router.post("/users/superuser")
async def set_superuser(
    change: SetSuperuser,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    require(actor, lambda u: u.is_superuser(), "Only superusers may do that")
    user = _target_user(state, change.userId, change.email)
    user.superuser = change.superuser
    await state.dispatcher.apply([Persist(user)])
    logger.info(f"user:{user.id} superuser set to {change.superuser}")
    return success_response(message="Superuser updated", data=user.to_client())

@router.post("/users/perms")
async def set_perms(
    change: SetPerms,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    require(actor, lambda u: u.is_superuser(), "Only superusers may do that")
    user = _target_user(state, change.userId, change.email)
    for perm, value in change.perms.items():
        user.set_perm(perm, value)
    await state.dispatcher.apply([Persist(user)])
    return success_response(message="Permissions updated", data={"perms": user.perms})

# Hangout farming

@router.get("/farming")
async def farming_status(
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    require(actor, lambda u: u.has_perm("farmHangouts"), "You may not farm hangouts")
    count = await state.pool.get_num_hangouts_available()
    return success_response(message="Farming status", data={"numFarmedHangouts": count})

@router.post("/farming")
async def farm_hangout(
    farmed: FarmedUrl,
    state: UnhangoutState = Depends(get_state),
    actor: Optional[User] = Depends(get_actor)
):
    """Add a pre-created hangout url to the pool"""
    require(actor, lambda u: u.has_perm("farmHangouts"), "You may not farm hangouts")
    await state.pool.reuse_url(str(farmed.url))
    count = await state.pool.get_num_hangouts_available()
    logger.info(f"Farmed hangout url {farmed.url}; {count} available")
    return success_response(
        message="Hangout url added",
        data={"numFarmedHangouts": count},
        status_code=201
    )

# Identity provider callback

@router.post("/auth/profile")
async def login_profile(
    profile: Profile,
    state: UnhangoutState = Depends(get_state),
    token: str = Depends(verify_admin_token)
):
    """Create or refresh a user from a verified identity profile"""
    user, effects = upsert_user_from_profile(
        state.registry, profile.model_dump(exclude_none=True), state.settings.ADMIN_EMAILS
    )
    await state.dispatcher.apply(effects)
    data = user.to_client()
    data["sockKey"] = derive_token(user)
    return success_response(message="Logged in", data=data)
