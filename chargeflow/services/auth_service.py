# chargeflow/services/auth_service.py
import jwt
import bcrypt
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from fastapi import HTTPException, status
import logging

from chargeflow.config.auth_config import auth_settings
from chargeflow.models.auth import UserInToken, UserRole
from chargeflow.db.database import execute_query, execute_update, from_db_time, to_db_time, utcnow

logger = logging.getLogger("chargeflow.auth")

class AuthService:
    """Service for handling authentication operations."""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=auth_settings.password_bcrypt_rounds)
        hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
        return hashed.decode('utf-8')

    @staticmethod
    def verify_password(password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))

    @staticmethod
    def create_access_token(user_data: Dict[str, Any]) -> str:
        """Create a JWT access token."""
        try:
            now = datetime.now(timezone.utc)
            expire = now + timedelta(hours=auth_settings.jwt_access_token_expire_hours)

            payload = {
                "user_id": user_data["user_id"],
                "email": user_data["email"],
                "role": user_data["role"],
                "exp": expire,
                "iat": now
            }

            token = jwt.encode(
                payload,
                auth_settings.jwt_secret_key,
                algorithm=auth_settings.jwt_algorithm
            )

            logger.info(f"✅ Access token created for user {user_data['email']}")
            return token

        except Exception as e:
            logger.error(f"❌ Error creating access token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not create access token"
            )

    @staticmethod
    def verify_token(token: str) -> UserInToken:
        """Verify and decode a JWT token."""
        try:
            payload = jwt.decode(
                token,
                auth_settings.jwt_secret_key,
                algorithms=[auth_settings.jwt_algorithm]
            )

            return UserInToken(
                user_id=payload["user_id"],
                email=payload["email"],
                role=UserRole(payload["role"])
            )

        except jwt.ExpiredSignatureError:
            logger.warning("⚠️ Token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired",
                headers={"WWW-Authenticate": "Bearer"}
            )
        except (jwt.InvalidTokenError, KeyError, ValueError) as e:
            logger.warning(f"⚠️ Invalid token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token",
                headers={"WWW-Authenticate": "Bearer"}
            )

    @staticmethod
    def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
        users = execute_query(
            """
            SELECT UserId, UserName, UserEmail, UserRegion, UserRole, UserPasswordHash
            FROM Users WHERE UserEmail = ?
            """,
            (email,)
        )
        return users[0] if users else None

    @staticmethod
    def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
        """Public fields of a user, or None if the account no longer exists."""
        users = execute_query(
            "SELECT UserId, UserName, UserEmail, UserRegion, UserRole, UserCreated FROM Users WHERE UserId = ?",
            (user_id,)
        )
        if not users:
            return None
        user = users[0]
        return {
            "id": user["UserId"],
            "name": user["UserName"],
            "email": user["UserEmail"],
            "region": user["UserRegion"],
            "role": user["UserRole"],
            "created_at": from_db_time(user["UserCreated"]),
        }

    @staticmethod
    def create_user(name: str, email: str, password: str, region: Optional[str] = None, role: str = "user") -> Dict[str, Any]:
        """Insert a user row and return its public fields."""
        user_id = uuid.uuid4().hex
        execute_update(
            """
            INSERT INTO Users (UserId, UserName, UserEmail, UserRegion, UserPasswordHash, UserRole, UserCreated)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, name, email, region, AuthService.hash_password(password), role, to_db_time(utcnow()))
        )
        logger.info(f"✅ User created: {email} ({role})")
        return {"user_id": user_id, "name": name, "email": email, "region": region, "role": role}

    @staticmethod
    def authenticate_user(email: str, password: str) -> Optional[Dict[str, Any]]:
        """Authenticate a user with email and password."""
        user = AuthService.get_user_by_email(email)

        if not user:
            logger.warning(f"⚠️ User not found: {email}")
            return None

        if not AuthService.verify_password(password, user["UserPasswordHash"]):
            logger.warning(f"⚠️ Invalid password for user: {email}")
            return None

        return {
            "user_id": user["UserId"],
            "name": user["UserName"],
            "email": user["UserEmail"],
            "region": user["UserRegion"],
            "role": user["UserRole"]
        }

    @staticmethod
    def ensure_admin_user() -> None:
        """Create (or promote) the admin account configured in AUTH_ADMIN_* settings."""
        try:
            existing_admin = execute_query(
                "SELECT UserEmail FROM Users WHERE UserRole = 'admin' LIMIT 1"
            )
            if existing_admin:
                logger.info(f"Admin user exists ({existing_admin[0]['UserEmail']})")
                return

            if not auth_settings.admin_email or not auth_settings.admin_password:
                logger.warning(
                    "⚠️ No admin user found and AUTH_ADMIN_EMAIL/AUTH_ADMIN_PASSWORD not set. Skipping admin creation."
                )
                return

            email = auth_settings.admin_email.lower()
            if AuthService.get_user_by_email(email):
                execute_update("UPDATE Users SET UserRole = 'admin' WHERE UserEmail = ?", (email,))
                logger.info(f"✅ Promoted user to admin ({email})")
                return

            AuthService.create_user(
                auth_settings.admin_name,
                email,
                auth_settings.admin_password,
                region=auth_settings.admin_region,
                role="admin"
            )
        except Exception as e:
            logger.error(f"❌ Failed to ensure admin user: {str(e)}", exc_info=True)
