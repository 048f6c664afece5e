from fastapi import APIRouter, Depends
from typing import List

from ordertrack.core.app_session import AppSession
from ordertrack.core.dependencies import get_app_session, require_manager
from ordertrack.modules.profiles.schemas import CompanyResponse, Profile
from ordertrack.modules.team.schemas import InvitationCreate, InvitationResponse, MemberResponse

router = APIRouter(prefix="/team", tags=["team"])


@router.get("/company", response_model=CompanyResponse)
async def get_company(
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    return await app_session.team.get_company(manager)


@router.get("/members", response_model=List[MemberResponse])
async def list_members(
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    """Company members other than the caller"""
    return await app_session.team.list_members(manager)


@router.get("/workers", response_model=List[MemberResponse])
async def list_workers(
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    return await app_session.team.list_workers(manager)


@router.delete("/members/{member_id}", status_code=204)
async def remove_member(
    member_id: str,
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    """Unassign the member from every order and detach them from the company"""
    await app_session.team.remove_member(manager, member_id)
    return None


@router.get("/invitations", response_model=List[InvitationResponse])
async def list_invitations(
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    return await app_session.team.list_invitations(manager)


@router.post("/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    invitation_data: InvitationCreate,
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    return await app_session.team.create_invitation(manager, invitation_data)


@router.delete("/invitations/{invitation_id}", status_code=204)
async def delete_invitation(
    invitation_id: str,
    manager: Profile = Depends(require_manager),
    app_session: AppSession = Depends(get_app_session)
):
    await app_session.team.delete_invitation(manager, invitation_id)
    return None
