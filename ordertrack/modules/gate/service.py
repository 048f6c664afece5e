"""
Authorization/visibility gate.

Tracks where the current client is in the session lifecycle and decides what
the view layer may render:

    loading -> unauthenticated
    loading -> authenticated_no_profile -> authenticated_degraded -> authenticated_ready
                                      \\-> authenticated_ready

Only ``authenticated_ready`` renders protected content. ``loading`` is bounded
by a timeout after which the gate reports ``unauthenticated`` with a retry
offer instead of spinning forever.
"""

import logging
import time
from typing import Any, Callable, Optional

from ordertrack.core.errors import (
    NotAuthenticatedError,
    ProfileDegradedError,
    SessionLoadingError,
)
from ordertrack.modules.gate.schemas import Capabilities, GateSnapshot, GateState
from ordertrack.modules.profiles.schemas import Profile

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
REPAIR_PATH = "/profile/repair"

MANAGER_ROLES = {"manager", "admin"}


def capabilities_for(role: Optional[str]) -> Capabilities:
    return Capabilities(
        is_manager=role in MANAGER_ROLES,
        is_admin=role == "admin",
        is_worker=role == "worker",
    )


def degraded_reason(profile: Optional[Profile]) -> Optional[str]:
    """None when the profile can be used for company-scoped work."""
    if profile is None:
        return "missing_profile"
    if not profile.company_id:
        return "missing_company"
    return None


class AuthGate:
    def __init__(self, loading_timeout: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.loading_timeout = loading_timeout
        self.clock = clock
        self._state = GateState.LOADING
        self._loading_since: Optional[float] = clock()
        self.user: Any = None
        self.profile: Optional[Profile] = None

    @property
    def timed_out(self) -> bool:
        if self._state != GateState.LOADING or self._loading_since is None:
            return False
        return self.clock() - self._loading_since >= self.loading_timeout

    @property
    def state(self) -> GateState:
        if self.timed_out:
            return GateState.UNAUTHENTICATED
        return self._state

    def _move(self, state: GateState) -> None:
        if state != self._state:
            logger.info(f"Gate: {self._state.value} -> {state.value}")
        self._state = state
        self._loading_since = self.clock() if state == GateState.LOADING else None

    def begin_loading(self) -> None:
        self.user = None
        self.profile = None
        self._move(GateState.LOADING)

    def session_changed(self, session: Any) -> None:
        user = getattr(session, "user", None) if session is not None else None
        if user is None:
            self.user = None
            self.profile = None
            self._move(GateState.UNAUTHENTICATED)
            return
        if self.user is not None and getattr(self.user, "id", None) == user.id and self.profile is not None:
            # same identity (e.g. token refresh): keep the resolved profile
            self.user = user
            return
        self.user = user
        self.profile = None
        self._move(GateState.NO_PROFILE)

    def profile_resolved(self, profile: Optional[Profile]) -> None:
        if self.user is None:
            logger.debug("Ignoring profile for a session that is already gone")
            return
        self.profile = profile
        reason = degraded_reason(profile)
        if reason == "missing_profile":
            self._move(GateState.NO_PROFILE)
        elif reason == "missing_company":
            self._move(GateState.DEGRADED)
        else:
            self._move(GateState.READY)

    @property
    def capabilities(self) -> Capabilities:
        return capabilities_for(self.profile.role if self.profile else None)

    def snapshot(self) -> GateSnapshot:
        state = self.state
        redirect_to = None
        if state == GateState.UNAUTHENTICATED:
            redirect_to = LOGIN_PATH
        elif state in (GateState.NO_PROFILE, GateState.DEGRADED):
            redirect_to = REPAIR_PATH
        return GateSnapshot(
            state=state,
            timed_out=self.timed_out,
            user_id=getattr(self.user, "id", None),
            email=getattr(self.user, "email", None),
            profile=self.profile,
            capabilities=self.capabilities,
            redirect_to=redirect_to,
        )

    def guard(self) -> Profile:
        """Return the ready profile or raise the error describing what to render instead."""
        state = self.state
        if state == GateState.READY:
            return self.profile
        if state == GateState.LOADING:
            raise SessionLoadingError()
        if state == GateState.UNAUTHENTICATED:
            if self.timed_out:
                raise NotAuthenticatedError(
                    "The server is not responding. Please try again.",
                    redirect_to=LOGIN_PATH,
                    retry=True,
                )
            raise NotAuthenticatedError(redirect_to=LOGIN_PATH)
        if state == GateState.NO_PROFILE:
            raise ProfileDegradedError(
                "missing_profile",
                "We could not find your profile. Please repair it to continue.",
                repair_path=REPAIR_PATH,
            )
        raise ProfileDegradedError(
            "missing_company",
            "Your profile is not linked to a company yet. Please repair it to continue.",
            repair_path=REPAIR_PATH,
        )
