# chargeflow/api/auth_routes.py
from fastapi import APIRouter, HTTPException, Depends, Response, status
import logging

from chargeflow.config.auth_config import auth_settings
from chargeflow.models.auth import LoginRequest, LoginResponse, SignupRequest, UserInfo, UserInToken
from chargeflow.services.auth_service import AuthService
from chargeflow.dependencies.auth import get_current_user

router = APIRouter(prefix="/api/auth", tags=["AUTHENTICATION"])
logger = logging.getLogger("chargeflow.auth")

def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=auth_settings.session_cookie_name,
        value=token,
        max_age=auth_settings.jwt_access_token_expire_hours * 3600,
        httponly=True,
        secure=auth_settings.session_cookie_secure,
        samesite="lax",
    )

def _login_response(response: Response, user_data) -> LoginResponse:
    access_token = AuthService.create_access_token(user_data)
    _set_session_cookie(response, access_token)
    return LoginResponse(
        access_token=access_token,
        user=UserInfo(
            id=user_data["user_id"],
            name=user_data["name"],
            email=user_data["email"],
            role=user_data["role"],
            region=user_data["region"],
        )
    )

@router.post("/signup", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def signup(details: SignupRequest, response: Response):
    """
    Create an account and sign it in.

    Raises:
        HTTPException: 409 if the email is already registered
    """
    try:
        if AuthService.get_user_by_email(details.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User exists already, please login instead."
            )

        user_data = AuthService.create_user(details.name, details.email, details.password, region=details.region)
        return _login_response(response, user_data)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Signup error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Signing up failed, please try again."
        )

@router.post("/login", response_model=LoginResponse)
async def login(credentials: LoginRequest, response: Response):
    """
    Authenticate user, set the session cookie and return the token.

    Args:
        credentials: Email and password

    Returns:
        JWT token and user information
    """
    try:
        user_data = AuthService.authenticate_user(credentials.email, credentials.password)

        if not user_data:
            logger.warning(f"⚠️ Failed login attempt for: {credentials.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"}
            )

        logger.info(f"✅ User logged in: {credentials.email} ({user_data['role']})")
        return _login_response(response, user_data)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Login error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.post("/logout")
async def logout(response: Response):
    """Clear the session cookie. Tokens are stateless, so this always succeeds."""
    response.delete_cookie(key=auth_settings.session_cookie_name)
    return {"message": "Logged out."}

@router.get("/session")
async def get_session(user: UserInToken = Depends(get_current_user)):
    """
    Get the signed-in user from the session cookie or bearer token.

    Returns:
        {"user": user information}
    """
    try:
        account = AuthService.get_user_by_id(user.user_id)
    except Exception as e:
        logger.error(f"❌ Error getting session user: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not retrieve user information"
        )

    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated."
        )

    return {
        "user": UserInfo(
            id=account["id"],
            name=account["name"],
            email=account["email"],
            role=account["role"],
            region=account["region"],
        )
    }
