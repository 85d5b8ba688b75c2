from supabase import Client
from fastapi import HTTPException, status
from config import get_supabase_client, JWT_SECRET_KEY, JWT_ALGORITHM
import jwt
import logging

logger = logging.getLogger(__name__)


class TokenUser:
    def __init__(self, id: str, email: str, role: str, payload: dict):
        self.id = id
        self.email = email
        self.role = role
        self.payload = payload


class AuthHelpers:
    """Helper functions for authentication operations"""

    def __init__(self):
        self._supabase = None

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    def verify_token(self, token: str) -> TokenUser:
        """
        Verify a Supabase access token locally without calling the Supabase API
        The marketplace role travels in user_metadata.role
        """
        try:
            payload = jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM],
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_signature": True,
                    "verify_aud": False
                }
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID"
            )

        user_metadata = payload.get("user_metadata") or {}
        return TokenUser(
            id=user_id,
            email=payload.get("email"),
            role=user_metadata.get("role"),
            payload=payload
        )

    async def refresh_token(self, refresh_token: str):
        """Refresh access token using refresh token"""
        try:
            auth_response = self.supabase.auth.refresh_session(refresh_token)
        except Exception as e:
            logger.error(f"Token refresh error: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        if auth_response.session is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )
        return auth_response.session


auth_helpers = AuthHelpers()
