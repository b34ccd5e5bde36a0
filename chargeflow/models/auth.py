# chargeflow/models/auth.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum
import re

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$|^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.local$'


def _normalize_email(v):
    """Custom email validation that allows .local domains"""
    if not v or '@' not in v:
        raise ValueError('Invalid email format')
    v = v.strip()
    if not re.match(EMAIL_PATTERN, v):
        raise ValueError('Invalid email format')
    return v.lower()


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"

class LoginRequest(BaseModel):
    """Login request model."""
    email: str
    password: str = Field(min_length=6)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

class SignupRequest(BaseModel):
    """Signup request model."""
    name: str = Field(min_length=1)
    email: str
    password: str = Field(min_length=6)
    region: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

class UserInfo(BaseModel):
    """User information model."""
    id: str
    name: str
    email: str
    role: UserRole
    region: Optional[str] = None

class LoginResponse(BaseModel):
    """Login response model."""
    access_token: str
    token_type: str = "bearer"
    user: UserInfo

class UserInToken(BaseModel):
    """User model for JWT token payload."""
    user_id: str
    email: str
    role: UserRole

class UserProfile(UserInfo):
    """User profile with the references kept on the account."""
    tickets: list[str] = []
    vehicles: list[str] = []
    created_at: Optional[datetime] = None
