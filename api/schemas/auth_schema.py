"""
Authentication schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from services.auth_service import MAX_PASSWORD_BYTES
from services.validation_service import EMAIL_REGEX


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_REGEX, description="Login email")
    password: str = Field(..., min_length=6, max_length=72, description="Password")
    full_name: Optional[str] = Field(None, max_length=255, description="Display name")

    @field_validator('password')
    @classmethod
    def password_fits_bcrypt(cls, value):
        if len(value.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise ValueError(f'Password must be at most {MAX_PASSWORD_BYTES} bytes')
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "email": "coordinador@campana.co",
                "password": "secreto123",
                "full_name": "Coordinador General"
            }
        }


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Token issued on login or registration."""

    user: UserResponse
    access_token: str
    token_type: str = 'bearer'
    message: Optional[str] = None
