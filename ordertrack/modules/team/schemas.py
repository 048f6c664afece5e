from pydantic import BaseModel, EmailStr
from typing import Optional, Literal
from datetime import datetime


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Literal["worker", "manager"] = "worker"


class InvitationResponse(BaseModel):
    id: str
    email: str
    role: str
    code: str
    company_id: str
    invited_by: Optional[str] = None
    is_used: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    company_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
