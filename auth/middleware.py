"""
Authentication middleware with local JWT validation
"""
import jwt
import logging
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from typing import Optional
from supabase import create_client, Client
from datetime import datetime, timedelta, timezone

from config import settings

logger = logging.getLogger(__name__)

# JWT settings
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


class AuthMiddleware:
    def __init__(self, supabase_client: Optional[Client] = None, jwt_secret: Optional[str] = None):
        self.jwt_secret = jwt_secret or settings.SUPABASE_JWT_SECRET
        if not self.jwt_secret:
            raise ValueError("SUPABASE_JWT_SECRET environment variable is required")

        if supabase_client is None:
            if not settings.SUPABASE_URL:
                raise ValueError("SUPABASE_URL environment variable is required")
            if not settings.SUPABASE_SERVICE_KEY:
                raise ValueError("SUPABASE_SERVICE_KEY environment variable is required")
            supabase_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
            logger.info("Supabase client initialized with local JWT validation")

        self.supabase: Client = supabase_client

    async def verify_token(self, credentials: HTTPAuthorizationCredentials) -> dict:
        """
        Verify JWT token locally without round-trip to Supabase
        """
        try:
            payload = jwt.decode(
                credentials.credentials,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                audience=JWT_AUDIENCE
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired"
            )
        except jwt.InvalidAudienceError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token audience"
            )
        except jwt.InvalidSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token signature"
            )
        except jwt.PyJWTError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token: {str(e)}"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user information"
            )

        # Role comes from the users row, never from the token
        user = await self.get_user(user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found"
            )

        return {
            "id": str(user["id"]),
            "email": user.get("email") or payload.get("email"),
            "role": user.get("role") or "normal",
        }

    def create_access_token(self, user_id: str, email: str, expires_in: timedelta = timedelta(hours=24)) -> str:
        """
        Create JWT access token (for custom auth flows and tests)
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "aud": JWT_AUDIENCE,
            "exp": now + expires_in,
            "iat": now
        }

        return jwt.encode(payload, self.jwt_secret, algorithm=JWT_ALGORITHM)

    async def get_user(self, user_id: str) -> Optional[dict]:
        try:
            response = self.supabase.table("users").select("id, email, role").eq("id", user_id).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error getting user {user_id}: {str(e)}")
            return None


# Global auth middleware instance - will be initialized on first use
auth_middleware = None


def get_auth_middleware() -> AuthMiddleware:
    """Get or create auth middleware instance"""
    global auth_middleware
    if auth_middleware is None:
        auth_middleware = AuthMiddleware()
    return auth_middleware
