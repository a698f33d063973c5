import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.meeting import MeetingCreate, MeetingResponse
from app.services import meeting_service

router = APIRouter(prefix="/meetings", tags=["meetings"])


@router.get("/user", response_model=list[MeetingResponse])
async def list_my_meetings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Meetings across all of the caller's active connections."""
    return await meeting_service.list_meetings_for_user(db, user.id)


@router.get("/connection/{connection_id}", response_model=list[MeetingResponse])
async def list_connection_meetings(
    connection_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.list_meetings_for_connection(db, user.id, connection_id)


@router.post("/{connection_id}", response_model=MeetingResponse, status_code=201)
async def propose_meeting(
    connection_id: uuid.UUID,
    data: MeetingCreate,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.propose_meeting(
        db,
        user.id,
        connection_id,
        date_time=data.date_time,
        location=data.location,
        details=data.details,
        apns_client=getattr(req.app.state, "apns_client", None),
    )


@router.put("/{meeting_id}/accept", response_model=MeetingResponse)
async def accept_meeting(
    meeting_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.accept_meeting(
        db, user.id, meeting_id, getattr(req.app.state, "apns_client", None)
    )


@router.put("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.cancel_meeting(
        db, user.id, meeting_id, getattr(req.app.state, "apns_client", None)
    )


@router.put("/{meeting_id}/complete", response_model=MeetingResponse)
async def complete_meeting(
    meeting_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await meeting_service.complete_meeting(db, user.id, meeting_id)
