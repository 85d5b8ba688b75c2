from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from config import get_db
from models import UserProfile
from routers.auth.auth import get_current_user, get_current_profile, profile_for_user
from dependencies.rbac import require_profile_read, require_profile_write
from services.stores import as_uuid
from utils.response_helpers import safe_model_validate, model_to_dict
from .schemas import UserProfileCreate, UserProfileUpdate, UserProfileResponse
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def profile_response(profile: UserProfile, email: str = None) -> UserProfileResponse:
    user_data = model_to_dict(profile)
    user_data["display_name"] = profile.display_name
    user_data["email"] = profile.email or email
    return safe_model_validate(UserProfileResponse, user_data)


@router.get("/me", response_model=UserProfileResponse)
async def get_current_user_profile(
    current_user = Depends(get_current_user),
    profile: UserProfile = Depends(get_current_profile),
    _: bool = Depends(require_profile_read)
):
    """
    Get current user's marketplace profile
    """
    return profile_response(profile, current_user.get("email"))


@router.post("/me", response_model=UserProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_current_user_profile(
    profile_data: UserProfileCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create the marketplace profile for an authenticated user that has none yet"""
    try:
        existing_profile = await profile_for_user(db, current_user["user_id"])
        if existing_profile:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Profile already exists"
            )

        profile = UserProfile(
            user_id=as_uuid(current_user["user_id"]),
            email=current_user.get("email"),
            **profile_data.model_dump()
        )
        db.add(profile)
        await db.commit()
        logger.info(f"Created {profile.role} profile for {current_user['user_id']}")

        return profile_response(profile)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating user profile: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create profile"
        )


@router.put("/me", response_model=UserProfileResponse)
async def update_current_user_profile(
    profile_update: UserProfileUpdate,
    current_user = Depends(get_current_user),
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_profile_write)
):
    """Update current user's profile information, including the location used for distances"""
    try:
        update_data = profile_update.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(profile, field, value)

        await db.commit()
        return profile_response(profile, current_user.get("email"))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating user profile: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )
