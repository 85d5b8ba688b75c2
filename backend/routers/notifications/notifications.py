from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from models import UserProfile
from routers.auth.auth import get_current_profile
from dependencies.rbac import require_notification_read, require_notification_write
from services.stores import NotificationStore
from utils.response_helpers import safe_model_validate, safe_model_validate_list
from .schemas import (
    NotificationResponse, NotificationListResponse, UnreadCountResponse, MarkAllReadResponse
)
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notification_read)
):
    """Current user's notifications, newest first"""
    try:
        store = NotificationStore(db)
        notifications = await store.query(profile.id, unread_only=unread_only, limit=limit)
        return NotificationListResponse(
            notifications=safe_model_validate_list(NotificationResponse, notifications),
            unread_count=await store.unread_count(profile.id)
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve notifications"
        )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notification_read)
):
    try:
        return UnreadCountResponse(unread_count=await NotificationStore(db).unread_count(profile.id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error counting notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to count notifications"
        )


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notification_write)
):
    try:
        updated = await NotificationStore(db).mark_all_read(profile.id)
        await db.commit()
        return MarkAllReadResponse(updated=updated, message=f"Marked {updated} notification(s) as read")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking notifications read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notifications"
        )


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_notification_write)
):
    try:
        store = NotificationStore(db)
        notification = await store.get(notification_id)
        # Other users' notifications are reported as missing
        if not notification or notification.user_id != profile.id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )

        await store.mark_read(notification)
        await db.commit()
        return safe_model_validate(NotificationResponse, notification)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notification"
        )
