"""
Post sign-up profile setup.

Runs as a resumable saga keyed by identity:

    pending --(profile fields written)--> profile_updated --(company linked)--> company_resolved

Progress is persisted after every step, so a failure part way leaves a
record that ``resume`` picks up from the failed step. Failures never
propagate: the profile simply stays without a company, which the gate
reports as degraded.
"""

import json
import logging
from typing import Any, Optional

from ordertrack.core.errors import OrderTrackError, RepairError, ValidationError
from ordertrack.core.remote import execute, remote_call
from ordertrack.modules.auth.storage import FileSessionStorage
from ordertrack.modules.profiles.schemas import SetupRecord, SignUpMetadata
from ordertrack.modules.profiles.service import ProfileResolver

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "ordertrack.profile-setup."


def setup_key(identity_id: str) -> str:
    return f"{STORAGE_PREFIX}{identity_id}"


def normalize_invitation_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def validate_metadata(metadata: SignUpMetadata) -> None:
    """Client-side checks run before the identity is created."""
    if not (metadata.full_name or "").strip():
        raise ValidationError("Please enter your full name.")
    if metadata.company_type == "new" and not (metadata.company_name or "").strip():
        raise ValidationError("Please enter a company name.")
    if metadata.company_type == "existing" and not normalize_invitation_code(metadata.invitation_code):
        raise ValidationError("Please enter an invitation code.")


class ProfileSetupSaga:
    def __init__(self, supabase: Any, resolver: ProfileResolver, storage: FileSessionStorage, timeout: Optional[float] = None):
        self.supabase = supabase
        self.resolver = resolver
        self.storage = storage
        self.timeout = timeout

    async def load(self, identity_id: str) -> Optional[SetupRecord]:
        raw = await self.storage.get_item(setup_key(identity_id))
        if not raw:
            return None
        try:
            return SetupRecord(**json.loads(raw))
        except ValueError as e:
            logger.warning(f"Discarding unreadable setup record for {identity_id}: {e}")
            await self.storage.remove_item(setup_key(identity_id))
            return None

    async def _save(self, record: SetupRecord) -> None:
        await self.storage.set_item(setup_key(record.identity_id), record.model_dump_json())

    async def has_pending(self, identity_id: str) -> bool:
        """True while a setup is unfinished. A finished record is pruned the first time it is seen here."""
        record = await self.load(identity_id)
        if record is None:
            return False
        if record.stage == "company_resolved":
            await self.discard(identity_id)
            logger.debug(f"Pruned finished setup record for {identity_id}")
            return False
        return True

    async def stash(self, identity_id: str, email: Optional[str], metadata: SignUpMetadata) -> SetupRecord:
        """Record a setup to run once the identity has a session."""
        record = SetupRecord(identity_id=identity_id, email=email, metadata=metadata)
        await self._save(record)
        return record

    async def start(self, identity_id: str, email: Optional[str], metadata: SignUpMetadata) -> SetupRecord:
        record = await self.stash(identity_id, email, metadata)
        return await self._run(record)

    async def discard(self, identity_id: str) -> None:
        await self.storage.remove_item(setup_key(identity_id))

    async def resume(self, identity_id: str) -> Optional[SetupRecord]:
        """Continue a setup from its last completed stage. None when nothing is pending."""
        record = await self.load(identity_id)
        if record is None:
            return None
        if record.stage == "company_resolved":
            return record
        logger.info(f"Resuming profile setup for {identity_id} at stage {record.stage}")
        return await self._run(record)

    async def _run(self, record: SetupRecord) -> SetupRecord:
        try:
            if record.stage == "pending":
                await self._update_profile(record)
                record.stage = "profile_updated"
                record.last_error = None
                await self._save(record)
            if record.stage == "profile_updated":
                record.company_id = await self._resolve_company(record)
                record.stage = "company_resolved"
                record.last_error = None
                await self._save(record)
                logger.info(f"Profile setup complete for {record.identity_id}")
        except OrderTrackError as e:
            record.last_error = e.message
            await self._save(record)
            logger.error(f"Profile setup for {record.identity_id} stopped at {record.stage}: {e.message}")
        return record

    async def _update_profile(self, record: SetupRecord) -> None:
        profile = await self.resolver.wait_for_profile(record.identity_id)
        if profile is None:
            raise RepairError("Your profile has not been created yet.")
        rows = await execute(
            self.supabase.table("profiles")
                .update({
                    "full_name": record.metadata.full_name,
                    "role": record.metadata.role,
                    "email": record.email,
                })
                .eq("id", record.identity_id),
            timeout=self.timeout,
        )
        if not rows:
            raise RepairError("Your profile could not be updated.")

    async def _resolve_company(self, record: SetupRecord) -> Optional[str]:
        metadata = record.metadata
        if metadata.company_type == "new":
            name = (metadata.company_name or "").strip()
            if not name:
                raise ValidationError("Please enter a company name.")
            fn, params = "create_company_and_update_profile", {"company_name": name, "user_id": record.identity_id}
        else:
            code = normalize_invitation_code(metadata.invitation_code)
            if not code:
                raise ValidationError("Please enter an invitation code.")
            fn, params = "process_invitation_and_update_profile", {"invitation_code": code, "user_id": record.identity_id}

        response = await remote_call(self.supabase.rpc(fn, params).execute(), timeout=self.timeout)
        result = response.data
        if isinstance(result, list):
            result = result[0] if result else None
        if isinstance(result, dict):
            if result.get("success") is False:
                raise RepairError(result.get("error") or "Company setup failed.")
            return result.get("company_id")
        return result if isinstance(result, str) else None
