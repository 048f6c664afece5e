"""
Base class for the fetch + mutate + subscribe resources (orders, assignments,
buy list).

Lifecycle:
  - ``mount()`` subscribes to every watched table and fetches the scoped list.
  - every change notification schedules a full re-fetch; no incremental patching.
  - only the most recently issued fetch may apply its result, so late or
    out-of-order responses never overwrite a newer snapshot.
  - a failed fetch keeps the previous snapshot and sets ``error``.
  - ``unmount()`` cancels pending re-fetches, drops in-flight results and
    unsubscribes every channel.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ordertrack.core.change_feed import ChangeFeed, FeedSubscription, parse_change
from ordertrack.core.errors import (
    NotAuthorizedError,
    NotFoundError,
    ProfileDegradedError,
    translate_error,
)
from ordertrack.core.remote import execute
from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.profiles.schemas import Profile

logger = logging.getLogger(__name__)


class RemoteResource:
    name = "resource"

    def __init__(
        self,
        supabase: Any,
        change_feed: ChangeFeed,
        profile: Profile,
        timeout: Optional[float] = None,
    ):
        self.supabase = supabase
        self.change_feed = change_feed
        self.profile = profile
        self.timeout = timeout
        self.items: List[Dict[str, Any]] = []
        self.error: Optional[str] = None
        self.mounted = False
        self._request_ids = itertools.count(1)
        self._latest_request = 0
        self._in_flight: Set[int] = set()
        self._subscriptions: List[FeedSubscription] = []
        self._refresh_tasks: Set[asyncio.Task] = set()
        self._listeners: List[Callable[[], None]] = []

    # -- scope -------------------------------------------------------------

    @property
    def company_id(self) -> Optional[str]:
        return self.profile.company_id

    @property
    def user_id(self) -> str:
        return self.profile.id

    @property
    def is_manager(self) -> bool:
        return capabilities_for(self.profile.role).is_manager

    def scope_key(self) -> Tuple[Optional[str], str, str]:
        return (self.profile.company_id, self.profile.role, self.profile.id)

    @property
    def loading(self) -> bool:
        return bool(self._in_flight)

    def watched_tables(self) -> List[Tuple[str, Optional[str]]]:
        """(table, realtime row filter) pairs that trigger a re-fetch."""
        raise NotImplementedError

    async def _fetch(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # -- lifecycle ---------------------------------------------------------

    async def mount(self) -> None:
        if self.mounted:
            return
        self.mounted = True
        for table, row_filter in self.watched_tables():
            try:
                subscription = await self.change_feed.subscribe(table, self._on_change, row_filter=row_filter)
            except Exception as e:
                logger.warning(f"{self.name}: realtime unavailable for {table}, continuing without it: {e}")
                continue
            if not self.mounted:
                # unmounted while the channel was opening
                await subscription.unsubscribe()
                return
            self._subscriptions.append(subscription)
        await self.refresh()

    async def unmount(self) -> None:
        self.mounted = False
        self._latest_request = next(self._request_ids)
        self._in_flight.clear()
        tasks, self._refresh_tasks = self._refresh_tasks, set()
        for task in tasks:
            task.cancel()
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()

    async def rescope(self, profile: Profile) -> None:
        """Re-mount when the company, role or identity behind the scope changed."""
        previous = self.scope_key()
        self.profile = profile
        if self.scope_key() == previous and self.mounted:
            return
        await self.unmount()
        self.items = []
        self.error = None
        await self.mount()

    # -- fetching ----------------------------------------------------------

    async def refresh(self) -> None:
        if not self.mounted:
            return
        request_id = next(self._request_ids)
        self._latest_request = request_id
        self._in_flight.add(request_id)
        self._notify()
        try:
            rows = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if request_id == self._latest_request:
                error = translate_error(e)
                self.error = error.message
                logger.warning(f"{self.name}: fetch failed, keeping previous snapshot: {error.message}")
        else:
            if request_id == self._latest_request:
                self.items = rows
                self.error = None
            else:
                logger.debug(f"{self.name}: dropping superseded fetch #{request_id}")
        finally:
            self._in_flight.discard(request_id)
            if self.mounted:
                self._notify()

    def schedule_refresh(self) -> None:
        if not self.mounted:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    def _on_change(self, payload: Dict[str, Any]) -> None:
        if not self.mounted:
            return
        event = parse_change(payload)
        logger.debug(f"{self.name}: {event.kind} on {event.table} (row {event.row_id}), re-fetching")
        self.schedule_refresh()

    # -- observers ---------------------------------------------------------

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception(f"{self.name}: listener failed")

    def snapshot(self) -> Dict[str, Any]:
        return {"items": list(self.items), "loading": self.loading, "error": self.error}

    # -- mutation helpers --------------------------------------------------

    async def _run(self, query: Any) -> List[Dict[str, Any]]:
        return await execute(query, timeout=self.timeout)

    def _require_company(self) -> str:
        if not self.company_id:
            raise ProfileDegradedError("missing_company")
        return self.company_id

    def _require_manager(self, action: str) -> None:
        if not self.is_manager:
            raise NotAuthorizedError(f"Only managers can {action}.")

    @staticmethod
    def _require_rows(rows: List[Dict[str, Any]], what: str) -> List[Dict[str, Any]]:
        if not rows:
            raise NotFoundError(f"{what} not found or you do not have permission to change it.")
        return rows
