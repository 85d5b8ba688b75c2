from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import get_db
from models import UserProfile
from services.stores import as_uuid
from .schemas import (
    UserRegister,
    UserLogin,
    RefreshRequest,
    AuthResponse,
    TokenResponse,
)
from .helpers import auth_helpers
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

security = HTTPBearer()


async def profile_for_user(db: AsyncSession, user_id) -> UserProfile:
    result = await db.execute(
        select(UserProfile).where(UserProfile.user_id == as_uuid(user_id))
    )
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
):
    """Get current user from JWT token"""
    token = credentials.credentials
    supabase_user = auth_helpers.verify_token(token)

    current_user = {
        "user_id": supabase_user.id,
        "email": supabase_user.email,
        "role": None
    }

    # Try to get role from JWT first
    if supabase_user.role:
        current_user["role"] = supabase_user.role
    else:
        logger.info(f"No role in JWT for user {supabase_user.id}, checking database...")
        user_profile = await profile_for_user(db, supabase_user.id)
        if user_profile:
            current_user["role"] = user_profile.role
        else:
            current_user["role"] = "customer"
            logger.warning(f"No user profile found for {supabase_user.id}, using default role: customer")

    return current_user


async def get_current_profile(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> UserProfile:
    """Marketplace profile of the authenticated user"""
    user_profile = await profile_for_user(db, current_user["user_id"])
    if not user_profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found"
        )
    return user_profile


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    try:
        auth_response = auth_helpers.supabase.auth.sign_up({
            "email": user_data.email,
            "password": user_data.password,
            "options": {
                "data": {
                    "full_name": user_data.full_name,
                    "role": user_data.role
                }
            }
        })

        if auth_response.user is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Failed to create user account"
            )

        new_user_profile = UserProfile(
            user_id=as_uuid(auth_response.user.id),
            full_name=user_data.full_name,
            business_name=user_data.business_name,
            role=user_data.role,
            phone=user_data.phone,
            email=user_data.email
        )
        db.add(new_user_profile)
        await db.commit()
        logger.info(f"Registered {user_data.role} {auth_response.user.id}")

        if auth_response.session is None:
            return AuthResponse(
                access_token="",
                refresh_token="",
                role=user_data.role,
                message="User created successfully. Please check your email to verify your account before logging in."
            )

        return AuthResponse(
            access_token=auth_response.session.access_token,
            refresh_token=auth_response.session.refresh_token,
            role=user_data.role
        )

    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Registration failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )


@router.post("/login", response_model=AuthResponse)
async def login(user_data: UserLogin):
    try:
        auth_response = auth_helpers.supabase.auth.sign_in_with_password({
            "email": user_data.email,
            "password": user_data.password
        })
    except Exception as e:
        logger.error(f"Login failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if auth_response.user is None or auth_response.session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    user_metadata = auth_response.user.user_metadata or {}
    return AuthResponse(
        access_token=auth_response.session.access_token,
        refresh_token=auth_response.session.refresh_token,
        role=user_metadata.get("role")
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(request_data: RefreshRequest):
    session = await auth_helpers.refresh_token(request_data.refresh_token)
    return TokenResponse(access_token=session.access_token)


@router.post("/logout")
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    try:
        auth_helpers.supabase.auth.sign_out()
    except Exception as e:
        logger.error(f"Logout failed: {str(e)}")
    return {"message": "Successfully logged out"}
