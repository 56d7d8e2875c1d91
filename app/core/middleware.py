from fastapi import HTTPException, status, Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from app.core.config import settings
from app.core.firebase import verify_firebase_token
import hmac
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

STAFF_ROLES = {'admin', 'staff'}


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Dependency to get current authenticated user from Firebase token.
    Protects routes that require authentication.
    """
    logger.info("get_current_user: Entry")

    try:
        token = credentials.credentials
        decoded_token = verify_firebase_token(token)
        user_id = decoded_token.get('uid')

        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials"
            )

        logger.info(f"get_current_user: Success - {user_id}")
        return {
            'uid': user_id,
            'email': decoded_token.get('email'),
            'role': decoded_token.get('role'),
            'token': decoded_token
        }
    except Exception as e:
        logger.error(f"get_current_user: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_staff(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for admin endpoints; role comes from the token's custom claims"""
    if current_user.get('role') not in STAFF_ROLES:
        logger.warning(f"require_staff: Forbidden - {current_user.get('uid')}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return current_user


async def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> str:
    """Shared-secret check for the scheduled batch trigger"""
    provided = (authorization or "").removeprefix("Bearer ").strip()
    if not provided or not hmac.compare_digest(provided, settings.cron_secret):
        logger.warning("verify_cron_secret: Unauthorized")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return "system"
