from pydantic import BaseModel, EmailStr
from typing import Optional

from campus_voice.models.enums import Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: Role


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str
    role: Role = Role.STUDENT


class ProfileRead(BaseModel):
    id: str
    role: Role
    display_name: Optional[str] = None
    email: str


class LoginResponse(Token):
    profile: ProfileRead


class ProfileSummary(BaseModel):
    display_name: Optional[str] = None
    email: str
    role: Role
    ticket_count: int = 0
