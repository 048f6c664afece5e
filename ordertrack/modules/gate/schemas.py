from enum import Enum
from pydantic import BaseModel
from typing import Optional

from ordertrack.modules.profiles.schemas import Profile


class GateState(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    NO_PROFILE = "authenticated_no_profile"
    DEGRADED = "authenticated_degraded"
    READY = "authenticated_ready"


class Capabilities(BaseModel):
    is_manager: bool = False
    is_admin: bool = False
    is_worker: bool = False


class GateSnapshot(BaseModel):
    state: GateState
    timed_out: bool = False
    user_id: Optional[str] = None
    email: Optional[str] = None
    profile: Optional[Profile] = None
    capabilities: Capabilities = Capabilities()
    redirect_to: Optional[str] = None
