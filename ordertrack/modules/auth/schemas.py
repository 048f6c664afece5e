from pydantic import BaseModel, EmailStr
from typing import Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str
    setup_complete: bool
    warning: Optional[str] = None


class LogoutResponse(BaseModel):
    message: str
    warning: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: EmailStr
