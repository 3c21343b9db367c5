"""
Public API routes - no authentication required
"""

from fastapi import APIRouter, Depends

from app.services.state import UnhangoutState
from app.utils.responses import success_response
from app.utils.security import get_state

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/events/{event_key}")
async def get_event(event_key: str, state: UnhangoutState = Depends(get_state)):
    """Public view of an event, by id or short name"""
    event = state.registry.require_event(event_key)
    data = event.to_client()
    data["url"] = event.url()
    return success_response(message="Event retrieved successfully", data=data)

@router.get("/events/{event_key}/sessions")
async def list_sessions(event_key: str, state: UnhangoutState = Depends(get_state)):
    """Sessions of an event in display order"""
    event = state.registry.require_event(event_key)
    return success_response(
        message="Sessions retrieved successfully",
        data=[s.to_client() for s in event.sessions]
    )
