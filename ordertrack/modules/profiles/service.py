import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ordertrack.config import settings
from ordertrack.core.errors import NotFoundError, OrderTrackError, RepairError, ValidationError
from ordertrack.core.remote import execute, remote_call
from ordertrack.modules.gate.service import degraded_reason
from ordertrack.modules.profiles.schemas import Profile, ProfileUpdate

logger = logging.getLogger(__name__)

PROFILE_SELECT = "*, companies(*)"


def is_degraded(profile: Optional[Profile]) -> bool:
    return degraded_reason(profile) is not None


class ProfileResolver:
    """Loads, waits for, repairs and edits the caller's profile row."""

    def __init__(
        self,
        supabase: Any,
        attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout: Optional[float] = None,
    ):
        self.supabase = supabase
        self.attempts = attempts if attempts is not None else settings.profile_poll_attempts
        self.initial_delay = initial_delay if initial_delay is not None else settings.profile_poll_initial_delay
        self.max_delay = max_delay if max_delay is not None else settings.profile_poll_max_delay
        self.sleep = sleep
        self.timeout = timeout

    async def fetch_profile(self, identity_id: str) -> Optional[Profile]:
        rows = await execute(
            self.supabase.table("profiles")
                .select(PROFILE_SELECT)
                .eq("id", identity_id)
                .limit(1),
            timeout=self.timeout,
        )
        if not rows:
            return None
        return Profile(**rows[0])

    async def wait_for_profile(self, identity_id: str, require_company: bool = False) -> Optional[Profile]:
        """
        Poll until the profile exists (and has a company, if required).

        The profile row is written by a backend trigger after sign-up, so it
        can lag the identity by a moment. Returns the last profile seen, which
        may still be None or company-less after the final attempt.
        """
        delay = self.initial_delay
        profile = None
        for attempt in range(1, self.attempts + 1):
            profile = await self.fetch_profile(identity_id)
            if profile is not None and (not require_company or profile.company_id):
                return profile
            if attempt < self.attempts:
                logger.debug(f"Profile {identity_id} not settled (attempt {attempt}), retrying in {delay:.2f}s")
                await self.sleep(delay)
                delay = min(delay * 2, self.max_delay)
        logger.warning(f"Profile {identity_id} did not settle after {self.attempts} attempts")
        return profile

    async def repair_profile(self, identity_id: str) -> Profile:
        """Ask the backend to create a missing profile row; safe to call repeatedly."""
        try:
            response = await remote_call(
                self.supabase.rpc("create_missing_profile", {}).execute(),
                timeout=self.timeout,
            )
        except OrderTrackError as e:
            raise RepairError(f"Profile repair failed: {e.message}") from e
        result = response.data
        if isinstance(result, list):
            result = result[0] if result else None
        if isinstance(result, dict) and result.get("success") is False:
            logger.error(f"Profile repair rejected for {identity_id}: {result.get('error')}")
            raise RepairError(result.get("error") or RepairError.default_message)

        profile = await self.wait_for_profile(identity_id)
        if profile is None:
            raise RepairError("Your profile could not be created. Please contact support.")
        logger.info(f"Repaired profile {identity_id}")
        return profile

    async def update_profile(self, identity_id: str, profile_data: ProfileUpdate) -> Profile:
        full_name = (profile_data.full_name or "").strip()
        if not full_name:
            raise ValidationError("Please enter your full name.")
        updates = {"full_name": full_name}
        if profile_data.email:
            updates["email"] = str(profile_data.email)
        rows = await execute(
            self.supabase.table("profiles")
                .update(updates)
                .eq("id", identity_id),
            timeout=self.timeout,
        )
        if not rows:
            raise NotFoundError("Profile not found or you do not have permission to change it.")
        profile = await self.fetch_profile(identity_id)
        return profile or Profile(**rows[0])
