from pydantic import BaseModel, EmailStr, field_validator, ConfigDict
from datetime import datetime
from typing import List, Optional

from bizboost.models import Role


class SignupStartRequest(BaseModel):
    """
    First signup step.

    Only the shape is checked here; length rules and normalization are applied
    by the signup service so they follow configuration.
    """
    username: str
    email: EmailStr
    password: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Username is required')
        return v


class SignupStartResponse(BaseModel):
    message: str
    # Only populated when expose_dev_code is enabled
    dev_code: Optional[str] = None


class SignupVerifyRequest(BaseModel):
    email: EmailStr
    code: str

    @field_validator('code')
    @classmethod
    def validate_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Verification code is required')
        return v


class LoginRequest(BaseModel):
    """
    Password login. identity is a username or an email.
    """
    identity: str
    password: str


class GoogleLoginRequest(BaseModel):
    """
    token is the Google ID token obtained by the front end.
    """
    token: str


class TokenResponse(BaseModel):
    token: str


class GuestSessionResponse(BaseModel):
    token: str
    role: Role
    id: int


class UserResponse(BaseModel):
    """
    The caller's own profile.

    Never include password_hash or session fields beyond the expiry.
    """
    id: int
    role: Role
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    favourites: List[str] = []
    session_expires_at: Optional[datetime] = None
    guest_expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicProfileResponse(BaseModel):
    """
    Another user's profile. email is only present when viewing yourself.
    """
    id: int
    role: Role
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    favourites: List[str] = []


class FavouritesResponse(BaseModel):
    favourites: List[str]


class FavouriteStatusResponse(BaseModel):
    favourited: bool


class FavouriteToggleResponse(BaseModel):
    success: bool
    favourited: bool


class MessageResponse(BaseModel):
    """
    Generic message response for operations without specific return data.
    """
    message: str
