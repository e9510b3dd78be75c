from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    account_type: Literal["prospect", "coach"]
    email: EmailStr
    password: str = Field(min_length=8)
    name: str = Field(min_length=2, max_length=50)
    # Coach accounts only
    discipline: str | None = Field(default=None, min_length=2)
    bio: str | None = None
    # Prospect accounts only
    goals: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str
