"""Auth request/response schemas."""
from uuid import UUID

from pydantic import BaseModel


class LoginRequest(BaseModel):
    login: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 1800


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    id: UUID
    login: str
    email: str
    display_name: str
    role: str
    is_active: bool

    model_config = {"from_attributes": True}
