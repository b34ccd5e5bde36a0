# chargeflow/config/auth_config.py
from pydantic_settings import BaseSettings
from typing import Optional

class AuthSettings(BaseSettings):
    """Authentication configuration settings."""
    
    # JWT Configuration
    jwt_secret_key: str = "your-super-secret-jwt-key-change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_hours: int = 24
    
    # Session cookie carrying the signed token
    session_cookie_name: str = "sid"
    session_cookie_secure: bool = False
    
    # Password hashing
    password_bcrypt_rounds: int = 12
    
    # Admin account created on startup when no admin exists
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: str = "Admin"
    admin_region: str = ""
    
    class Config:
        env_file = ".env"
        env_prefix = "AUTH_"
        extra = "ignore"

# Global auth settings instance
auth_settings = AuthSettings()
