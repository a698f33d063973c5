import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.connection import ConnectionResponse
from app.services import connection_service

router = APIRouter(prefix="/connections", tags=["connections"])


@router.post("/request/{user_id}", response_model=ConnectionResponse, status_code=201)
async def request_connection(
    user_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send a connection request to another user."""
    return await connection_service.request_connection(
        db,
        user.id,
        user_id,
        redis_client=getattr(req.app.state, "redis", None),
        apns_client=getattr(req.app.state, "apns_client", None),
    )


@router.put("/{connection_id}/accept", response_model=ConnectionResponse)
async def accept_connection(
    connection_id: uuid.UUID,
    req: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await connection_service.accept_connection(
        db, user.id, connection_id, getattr(req.app.state, "apns_client", None)
    )


@router.put("/{connection_id}/reject", response_model=ConnectionResponse)
async def reject_connection(
    connection_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await connection_service.reject_connection(db, user.id, connection_id)


@router.put("/{connection_id}/block", response_model=ConnectionResponse)
async def block_connection(
    connection_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await connection_service.block_connection(db, user.id, connection_id)


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await connection_service.list_connections(db, user.id)


@router.get("/active", response_model=list[ConnectionResponse])
async def list_active_connections(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await connection_service.list_active_connections(db, user.id)
