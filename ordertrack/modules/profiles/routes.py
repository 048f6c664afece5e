from fastapi import APIRouter, Depends
from typing import Any

from ordertrack.core.app_session import AppSession
from ordertrack.core.dependencies import get_app_session, get_current_user, require_ready_profile
from ordertrack.modules.profiles.schemas import Profile, ProfileUpdate, RepairResponse

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=Profile)
async def get_profile(profile: Profile = Depends(require_ready_profile)):
    return profile


@router.put("", response_model=Profile)
async def update_profile(
    profile_data: ProfileUpdate,
    profile: Profile = Depends(require_ready_profile),
    app_session: AppSession = Depends(get_app_session)
):
    """Update the caller's full name and, optionally, contact email"""
    await app_session.resolver.update_profile(profile.id, profile_data)
    return await app_session.refresh_profile()


@router.post("/repair", response_model=RepairResponse)
async def repair_profile(
    user: Any = Depends(get_current_user),
    app_session: AppSession = Depends(get_app_session)
):
    """Finish an interrupted setup or recreate a missing profile"""
    profile, resumed = await app_session.repair()
    return RepairResponse(profile=profile, resumed_setup=resumed)
