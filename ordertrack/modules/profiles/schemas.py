from pydantic import BaseModel, EmailStr, model_validator
from typing import Optional, Literal
from datetime import datetime

Role = Literal["worker", "manager", "admin"]


class CompanyResponse(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role = "worker"
    company_id: Optional[str] = None
    company: Optional[CompanyResponse] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_company(cls, data):
        # postgrest embeds the joined row under the table name
        if isinstance(data, dict) and "companies" in data and "company" not in data:
            data = {**data, "company": data.get("companies")}
        return data

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    full_name: str
    email: Optional[EmailStr] = None


class SignUpMetadata(BaseModel):
    full_name: str
    role: Literal["worker", "manager"] = "manager"
    company_type: Literal["new", "existing"] = "new"
    company_name: Optional[str] = None
    invitation_code: Optional[str] = None


class SignUpRequest(SignUpMetadata):
    email: EmailStr
    password: str


class SetupRecord(BaseModel):
    """Persisted progress of the sign-up profile setup saga."""
    identity_id: str
    email: Optional[str] = None
    stage: Literal["pending", "profile_updated", "company_resolved"] = "pending"
    metadata: SignUpMetadata
    company_id: Optional[str] = None
    last_error: Optional[str] = None


class RepairResponse(BaseModel):
    profile: Profile
    resumed_setup: bool = False
