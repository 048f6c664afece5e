import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ordertrack.core.errors import ValidationError
from ordertrack.core.remote import execute
from ordertrack.core.resource import RemoteResource

logger = logging.getLogger(__name__)

ASSIGNMENT_SELECT = "*, orders!inner(*), profiles:worker_id(full_name)"


async def require_company_workers(
    supabase: Any,
    company_id: str,
    worker_ids: Iterable[str],
    timeout: Optional[float] = None,
) -> List[str]:
    """De-duplicated ``worker_ids``; raises unless every one is a member of the company."""
    unique_ids = list(dict.fromkeys(w for w in worker_ids if w))
    if not unique_ids:
        return []
    members = await execute(
        supabase.table("profiles")
            .select("id")
            .in_("id", unique_ids)
            .eq("company_id", company_id),
        timeout=timeout,
    )
    if {m["id"] for m in members} != set(unique_ids):
        raise ValidationError("Some selected workers are not part of your company.")
    return unique_ids


async def replace_assignments(
    supabase: Any,
    order_id: str,
    worker_ids: Iterable[str],
    timeout: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """
    Destructive replace: drop every assignment row of the order, then insert
    fresh rows for exactly ``worker_ids``. Flags of workers that stay assigned
    are reset to False. Not atomic: if the insert fails the order is left
    without assignments and the error propagates.
    """
    unique_ids = list(dict.fromkeys(w for w in worker_ids if w))
    await execute(
        supabase.table("order_assignments").delete().eq("order_id", order_id),
        timeout=timeout,
    )
    if not unique_ids:
        logger.info(f"Cleared assignments for order {order_id}")
        return []
    rows = [
        {"order_id": order_id, "worker_id": worker_id, "starred": False, "marked_done": False}
        for worker_id in unique_ids
    ]
    inserted = await execute(supabase.table("order_assignments").insert(rows), timeout=timeout)
    logger.info(f"Assigned order {order_id} to {len(unique_ids)} worker(s)")
    return inserted


class AssignmentsResource(RemoteResource):
    name = "assignments"

    def watched_tables(self) -> List[Tuple[str, Optional[str]]]:
        # order_assignments has no company column; row-level security scopes its feed
        return [
            ("order_assignments", None),
            ("orders", f"company_id=eq.{self.company_id}"),
        ]

    async def _fetch(self) -> List[Dict[str, Any]]:
        if not self.company_id:
            return []
        query = self.supabase.table("order_assignments")\
            .select(ASSIGNMENT_SELECT)\
            .eq("orders.company_id", self.company_id)
        if not self.is_manager:
            query = query.eq("worker_id", self.user_id)
        return await self._run(query)

    def find(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        return next((a for a in self.items if a.get("id") == assignment_id), None)

    def starred_count(self) -> int:
        return sum(1 for a in self.items if a.get("worker_id") == self.user_id and a.get("starred"))

    async def assign_workers(self, order_id: str, worker_ids: List[str]) -> List[Dict[str, Any]]:
        self._require_manager("assign workers")
        company_id = self._require_company()
        order = await self._run(
            self.supabase.table("orders")
                .select("id")
                .eq("id", order_id)
                .eq("company_id", company_id)
                .limit(1)
        )
        self._require_rows(order, "Order")
        unique_ids = await require_company_workers(self.supabase, company_id, worker_ids, timeout=self.timeout)
        rows = await replace_assignments(self.supabase, order_id, unique_ids, timeout=self.timeout)
        self.schedule_refresh()
        return rows

    async def toggle_starred(self, assignment_id: str, starred: Optional[bool] = None) -> Dict[str, Any]:
        """Star or unstar one of the caller's own assignments."""
        if starred is None:
            current = self.find(assignment_id)
            starred = not (current or {}).get("starred", False)
        rows = await self._run(
            self.supabase.table("order_assignments")
                .update({"starred": starred})
                .eq("id", assignment_id)
                .eq("worker_id", self.user_id)
        )
        self._require_rows(rows, "Assignment")
        self.schedule_refresh()
        return rows[0]

    async def set_marked_done(self, order_id: str, done: bool = True) -> Dict[str, Any]:
        """
        Mark the caller's work on an order as done (or not).

        Specific orders already carry the caller's row. General orders get one
        on first use; later toggles reuse it instead of inserting duplicates.
        """
        company_id = self._require_company()
        existing = await self._run(
            self.supabase.table("order_assignments")
                .select("id")
                .eq("order_id", order_id)
                .eq("worker_id", self.user_id)
                .limit(1)
        )
        if existing:
            rows = await self._run(
                self.supabase.table("order_assignments")
                    .update({"marked_done": done})
                    .eq("id", existing[0]["id"])
                    .eq("worker_id", self.user_id)
            )
            self._require_rows(rows, "Assignment")
        else:
            general = await self._run(
                self.supabase.table("orders")
                    .select("id")
                    .eq("id", order_id)
                    .eq("company_id", company_id)
                    .eq("assignment_type", "general")
                    .limit(1)
            )
            self._require_rows(general, "Order")
            rows = await self._run(
                self.supabase.table("order_assignments").insert({
                    "order_id": order_id,
                    "worker_id": self.user_id,
                    "starred": False,
                    "marked_done": done,
                })
            )
            self._require_rows(rows, "Assignment")
        self.schedule_refresh()
        return rows[0]
