"""
Process-wide client session.

Wires the session manager, profile resolver, setup saga and gate together
and owns the three live resources. Resources exist only while the gate is
``authenticated_ready``; any session or profile change re-evaluates that.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from ordertrack.config import settings
from ordertrack.core.change_feed import ChangeFeed
from ordertrack.core.errors import (
    NotAuthenticatedError,
    OrderTrackError,
    RepairError,
    SessionUnavailable,
)
from ordertrack.core.resource import RemoteResource
from ordertrack.modules.analytics.service import AnalyticsService
from ordertrack.modules.assignments.service import AssignmentsResource
from ordertrack.modules.auth.service import SessionManager, session_key
from ordertrack.modules.auth.storage import FileSessionStorage, MemorySessionStorage
from ordertrack.modules.buy_list.service import BuyListResource
from ordertrack.modules.gate.schemas import GateSnapshot, GateState
from ordertrack.modules.gate.service import AuthGate
from ordertrack.modules.orders.images import OrderImageStore
from ordertrack.modules.orders.service import OrdersResource
from ordertrack.modules.profiles.schemas import Profile, SetupRecord, SignUpMetadata, SignUpRequest
from ordertrack.modules.profiles.service import ProfileResolver
from ordertrack.modules.profiles.setup import ProfileSetupSaga, validate_metadata
from ordertrack.modules.team.service import TeamService

logger = logging.getLogger(__name__)

_UNSET = object()


class AppSession:
    def __init__(
        self,
        supabase: Any,
        session_storage: Optional[FileSessionStorage] = None,
        setup_storage: Optional[FileSessionStorage] = None,
        change_feed: Optional[ChangeFeed] = None,
        resolver: Optional[ProfileResolver] = None,
        gate: Optional[AuthGate] = None,
        timeout: Optional[float] = None,
    ):
        self.supabase = supabase
        self.timeout = timeout
        self.sessions = SessionManager(supabase, storage=session_storage, timeout=timeout)
        self.resolver = resolver or ProfileResolver(supabase, timeout=timeout)
        self.setup = ProfileSetupSaga(
            supabase, self.resolver, setup_storage or MemorySessionStorage(), timeout=timeout
        )
        self.gate = gate or AuthGate(loading_timeout=settings.gate_loading_timeout_seconds)
        self.change_feed = change_feed or ChangeFeed(supabase)
        self.team = TeamService(supabase, timeout=timeout)
        self.analytics = AnalyticsService(supabase, timeout=timeout)
        self.images = OrderImageStore(supabase, timeout=timeout)
        self.orders: Optional[OrdersResource] = None
        self.assignments: Optional[AssignmentsResource] = None
        self.buy_list: Optional[BuyListResource] = None
        self._applied_key: Any = _UNSET
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = None
        # outcome of the most recent setup run; its stored record is discarded once the profile is ready
        self.last_setup: Optional[SetupRecord] = None

    @property
    def resources(self) -> List[RemoteResource]:
        return [r for r in (self.orders, self.assignments, self.buy_list) if r is not None]

    def snapshot(self) -> GateSnapshot:
        return self.gate.snapshot()

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> GateSnapshot:
        self.gate.begin_loading()
        if self._unsubscribe is None:
            self._unsubscribe = self.sessions.on_session_change(self._on_session_event)
        try:
            session = await self.sessions.get_initial_session()
        except SessionUnavailable:
            # whatever a concurrent sign-in left behind, usually nothing
            session = self.sessions.session
        await self._apply_session(session)
        logger.info(f"Session started in state {self.gate.state.value}")
        return self.gate.snapshot()

    def start_in_background(self) -> asyncio.Task:
        """
        Begin ``start()`` without waiting for it.

        Callers can serve requests right away: the gate reports ``loading``
        until the load finishes, and ``unauthenticated`` with a retry offer
        once the loading timeout passes.
        """
        self.gate.begin_loading()
        task = asyncio.get_running_loop().create_task(self.start())
        self._track(task)
        return task

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        tasks, self._tasks = self._tasks, set()
        for task in tasks:
            task.cancel()
        await self._unmount_resources()
        self.sessions.close()

    async def retry(self) -> GateSnapshot:
        """Start over after a timed out or failed session load."""
        self._applied_key = _UNSET
        return await self.start()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session task failed: {task.exception()}")

    def _on_session_event(self, event: str, session: Any) -> None:
        self._track(asyncio.get_running_loop().create_task(self._apply_session(session)))

    async def _apply_session(self, session: Any, force: bool = False) -> None:
        async with self._lock:
            key = session_key(session)
            if key == self._applied_key and not force:
                return
            previous = self._applied_key
            self._applied_key = key
            user = getattr(session, "user", None) if session is not None else None
            self.gate.session_changed(session)
            if user is None:
                await self._unmount_resources()
                return
            same_user = isinstance(previous, tuple) and previous[0] == user.id
            if same_user and self.gate.profile is not None and not force:
                # token refresh
                return
            await self._resolve_profile(user.id)

    async def _resolve_profile(self, user_id: str) -> Optional[Profile]:
        try:
            if await self.setup.has_pending(user_id):
                _, profile = await self._resume_setup(user_id)
            else:
                profile = await self.resolver.fetch_profile(user_id)
        except OrderTrackError as e:
            logger.warning(f"Could not load profile for {user_id}: {e.message}")
            profile = None
        self.gate.profile_resolved(profile)
        await self._sync_resources()
        return profile

    async def _resume_setup(self, user_id: str) -> Tuple[Optional[SetupRecord], Optional[Profile]]:
        record = await self.setup.resume(user_id)
        self.last_setup = record
        if record is None or record.stage != "company_resolved":
            return record, await self.resolver.fetch_profile(user_id)
        profile = await self.resolver.wait_for_profile(user_id, require_company=True)
        if profile is not None and profile.company_id:
            await self.setup.discard(user_id)
        return record, profile

    async def _sync_resources(self) -> None:
        if self.gate.state != GateState.READY:
            await self._unmount_resources()
            return
        profile = self.gate.profile
        if self.orders is None:
            self.orders = OrdersResource(
                self.supabase, self.change_feed, profile, timeout=self.timeout, images=self.images
            )
            self.assignments = AssignmentsResource(self.supabase, self.change_feed, profile, timeout=self.timeout)
            self.buy_list = BuyListResource(self.supabase, self.change_feed, profile, timeout=self.timeout)
            for resource in self.resources:
                await resource.mount()
        else:
            for resource in self.resources:
                await resource.rescope(profile)

    async def _unmount_resources(self) -> None:
        resources = self.resources
        self.orders = self.assignments = self.buy_list = None
        for resource in resources:
            await resource.unmount()

    # -- operations --------------------------------------------------------

    def require_user(self) -> Any:
        user = self.sessions.user
        if user is None:
            raise NotAuthenticatedError()
        return user

    async def sign_in(self, email: str, password: str) -> GateSnapshot:
        session = await self.sessions.sign_in(email, password)
        await self._apply_session(session)
        return self.gate.snapshot()

    async def sign_up(self, request: SignUpRequest) -> Tuple[Any, Optional[SetupRecord]]:
        """
        Create the identity and run profile setup.

        Returns the new user and the setup record. When the backend requires
        email confirmation there is no session yet; the setup is stashed and
        runs on first sign-in, and the record comes back as None.
        """
        metadata = SignUpMetadata(**request.model_dump(exclude={"email", "password"}))
        validate_metadata(metadata)
        self.last_setup = None
        user = await self.sessions.sign_up(request.email, request.password, metadata)
        await self.setup.stash(user.id, request.email, metadata)
        session = self.sessions.session
        if session is None or getattr(self.sessions.user, "id", None) != user.id:
            logger.info(f"Sign-up for {request.email} awaits email confirmation")
            return user, None
        # the auth event may already have resolved the bare profile
        await self._apply_session(session, force=True)
        record = self.last_setup
        if record is None or record.identity_id != user.id:
            record = await self.setup.load(user.id)
        return user, record

    async def sign_out(self) -> Optional[str]:
        try:
            return await self.sessions.sign_out()
        finally:
            await self._apply_session(None)

    async def reset_password(self, email: str) -> None:
        await self.sessions.reset_password(email)

    async def repair(self) -> Tuple[Profile, bool]:
        """Resume a pending setup if there is one, else ask the backend to recreate the profile."""
        user = self.require_user()
        resumed = False
        if await self.setup.has_pending(user.id):
            resumed = True
            record, profile = await self._resume_setup(user.id)
            if record is None or record.stage != "company_resolved":
                raise RepairError(record.last_error if record and record.last_error else None)
            if profile is None:
                raise RepairError()
        else:
            profile = await self.resolver.repair_profile(user.id)
        self.gate.profile_resolved(profile)
        await self._sync_resources()
        return profile, resumed

    async def refresh_profile(self) -> Optional[Profile]:
        user = self.require_user()
        profile = await self.resolver.fetch_profile(user.id)
        self.gate.profile_resolved(profile)
        await self._sync_resources()
        return profile

    def resource(self, name: str) -> RemoteResource:
        resources: Dict[str, Optional[RemoteResource]] = {
            "orders": self.orders,
            "assignments": self.assignments,
            "buy-list": self.buy_list,
        }
        if name not in resources:
            raise KeyError(name)
        found = resources[name]
        if found is None:
            self.gate.guard()
            raise NotAuthenticatedError()
        return found


async def build_app_session() -> AppSession:
    from ordertrack.database.supabase_client import SupabaseClient

    supabase = await SupabaseClient.get_client()
    return AppSession(
        supabase,
        session_storage=SupabaseClient.get_storage(),
        setup_storage=FileSessionStorage(settings.setup_file),
        timeout=settings.request_timeout_seconds,
    )
