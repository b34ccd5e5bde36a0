# chargeflow/dependencies/auth.py
from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging

from chargeflow.config.auth_config import auth_settings
from chargeflow.services.auth_service import AuthService
from chargeflow.models.auth import UserInToken

logger = logging.getLogger("chargeflow.auth")

# Bearer tokens are optional; the session cookie is the primary carrier
security = HTTPBearer(auto_error=False)

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UserInToken:
    """
    Dependency to get current user from the session cookie or a Bearer token.

    Raises:
        HTTPException: 401 if no token is present or it is invalid or expired
    """
    token = credentials.credentials if credentials else request.cookies.get(auth_settings.session_cookie_name)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = AuthService.verify_token(token)
    logger.debug(f"🔍 User authenticated: {user.email} ({user.role.value})")
    return user

def get_websocket_user(websocket: WebSocket) -> Optional[UserInToken]:
    """
    Resolve the user of a WebSocket handshake from the session cookie or a
    `token` query parameter. Returns None instead of raising so the handler
    can close the socket with a policy-violation code.
    """
    token = websocket.cookies.get(auth_settings.session_cookie_name) or websocket.query_params.get("token")
    if not token:
        return None
    try:
        return AuthService.verify_token(token)
    except HTTPException:
        return None
