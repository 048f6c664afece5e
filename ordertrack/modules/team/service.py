import logging
import secrets
import string
from typing import Any, Dict, List, Optional

from ordertrack.core.errors import NotAuthorizedError, NotFoundError, ProfileDegradedError, ValidationError
from ordertrack.core.remote import execute
from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.profiles.schemas import Profile
from ordertrack.modules.team.schemas import InvitationCreate

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 9


def generate_invitation_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class TeamService:
    """Company, members and invitations. Every operation is manager only."""

    def __init__(self, supabase: Any, timeout: Optional[float] = None):
        self.supabase = supabase
        self.timeout = timeout

    def _scope(self, profile: Profile) -> str:
        if not capabilities_for(profile.role).is_manager:
            raise NotAuthorizedError("Only managers can manage the team.")
        if not profile.company_id:
            raise ProfileDegradedError("missing_company")
        return profile.company_id

    async def get_company(self, profile: Profile) -> Dict[str, Any]:
        company_id = self._scope(profile)
        rows = await execute(
            self.supabase.table("companies").select("*").eq("id", company_id).limit(1),
            timeout=self.timeout,
        )
        if not rows:
            raise NotFoundError("Company not found.")
        return rows[0]

    async def list_members(self, profile: Profile) -> List[Dict[str, Any]]:
        """Everyone in the company except the caller."""
        company_id = self._scope(profile)
        return await execute(
            self.supabase.table("profiles")
                .select("*")
                .eq("company_id", company_id)
                .neq("id", profile.id),
            timeout=self.timeout,
        )

    async def list_workers(self, profile: Profile) -> List[Dict[str, Any]]:
        company_id = self._scope(profile)
        return await execute(
            self.supabase.table("profiles")
                .select("id, full_name, email, role")
                .eq("company_id", company_id)
                .eq("role", "worker")
                .order("full_name"),
            timeout=self.timeout,
        )

    async def list_invitations(self, profile: Profile) -> List[Dict[str, Any]]:
        company_id = self._scope(profile)
        return await execute(
            self.supabase.table("invitations")
                .select("*")
                .eq("company_id", company_id)
                .eq("is_used", False)
                .order("created_at", desc=True),
            timeout=self.timeout,
        )

    async def create_invitation(self, profile: Profile, invitation: InvitationCreate) -> Dict[str, Any]:
        email = (invitation.email or "").strip().lower()
        if not email:
            raise ValidationError("Please enter an email address.")
        company_id = self._scope(profile)
        code = generate_invitation_code()
        rows = await execute(
            self.supabase.table("invitations").insert({
                "email": email,
                "role": invitation.role,
                "company_id": company_id,
                "code": code,
                "invited_by": profile.id,
                "is_used": False,
            }),
            timeout=self.timeout,
        )
        if not rows:
            raise NotFoundError("Invitation could not be created.")
        logger.info(f"Created {invitation.role} invitation for {email} in company {company_id}")
        return rows[0]

    async def delete_invitation(self, profile: Profile, invitation_id: str) -> None:
        company_id = self._scope(profile)
        rows = await execute(
            self.supabase.table("invitations")
                .delete()
                .eq("id", invitation_id)
                .eq("company_id", company_id),
            timeout=self.timeout,
        )
        if not rows:
            raise NotFoundError("Invitation not found or you do not have permission to change it.")

    async def remove_member(self, profile: Profile, worker_id: str) -> None:
        """Unassign the member everywhere, then detach them from the company."""
        company_id = self._scope(profile)
        if worker_id == profile.id:
            raise ValidationError("You cannot remove yourself from the company.")
        member = await execute(
            self.supabase.table("profiles")
                .select("id")
                .eq("id", worker_id)
                .eq("company_id", company_id)
                .limit(1),
            timeout=self.timeout,
        )
        if not member:
            raise NotFoundError("Member not found or you do not have permission to change it.")
        await execute(
            self.supabase.table("order_assignments").delete().eq("worker_id", worker_id),
            timeout=self.timeout,
        )
        rows = await execute(
            self.supabase.table("profiles")
                .update({"company_id": None})
                .eq("id", worker_id)
                .eq("company_id", company_id),
            timeout=self.timeout,
        )
        if not rows:
            raise NotFoundError("Member not found or you do not have permission to change it.")
        logger.info(f"Removed member {worker_id} from company {company_id}")
