"""Order statistics for the dashboard and analytics views, computed from snapshots."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from ordertrack.core.errors import NotAuthorizedError, ProfileDegradedError
from ordertrack.core.remote import execute
from ordertrack.modules.analytics.schemas import DashboardResponse, OrderStats, WorkerPerformance
from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.orders.schemas import ORDER_STATUSES, PRIORITIES
from ordertrack.modules.orders.visibility import is_assigned_to
from ordertrack.modules.profiles.schemas import Profile

logger = logging.getLogger(__name__)

COMPLETED = "completed"
HIGH_PRIORITIES = ("high", "urgent")
RECENT_DAYS = 30
PREVIEW_SIZE = 3


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _rate(completed: int, total: int) -> int:
    return round(completed * 100 / total) if total else 0


def is_open(order: Dict[str, Any]) -> bool:
    return order.get("status") != COMPLETED


def is_high_priority_open(order: Dict[str, Any]) -> bool:
    return order.get("priority") in HIGH_PRIORITIES and is_open(order)


def order_stats(orders: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> OrderStats:
    orders = list(orders)
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=RECENT_DAYS)

    completed = sum(1 for o in orders if o.get("status") == COMPLETED)
    recent = 0
    for order in orders:
        created = _parse_timestamp(order.get("created_at"))
        if created is not None and created >= cutoff:
            recent += 1

    return OrderStats(
        total=len(orders),
        pending=len(orders) - completed,
        completed=completed,
        high_priority_open=sum(1 for o in orders if is_high_priority_open(o)),
        by_status={s: sum(1 for o in orders if o.get("status") == s) for s in ORDER_STATUSES},
        by_priority={p: sum(1 for o in orders if o.get("priority") == p) for p in PRIORITIES},
        recent_30_days=recent,
        completion_rate=_rate(completed, len(orders)),
    )


def worker_performance(rows: Iterable[Dict[str, Any]]) -> List[WorkerPerformance]:
    """Per-worker completion from profile rows with embedded assignment orders, best first."""
    result = []
    for row in rows:
        worker_orders = [a.get("orders") for a in row.get("order_assignments") or [] if a.get("orders")]
        completed = sum(1 for o in worker_orders if o.get("status") == COMPLETED)
        result.append(WorkerPerformance(
            id=row["id"],
            full_name=row.get("full_name"),
            total_orders=len(worker_orders),
            completed_orders=completed,
            completion_rate=_rate(completed, len(worker_orders)),
        ))
    result.sort(key=lambda w: w.completion_rate, reverse=True)
    return result


def dashboard(
    profile: Profile,
    orders: Iterable[Dict[str, Any]],
    assignments: Iterable[Dict[str, Any]],
) -> DashboardResponse:
    orders = list(orders)
    assignments = list(assignments)

    if capabilities_for(profile.role).is_manager:
        stats = order_stats(orders)
        return DashboardResponse(
            role=profile.role,
            stats={
                "total": stats.total,
                "pending": stats.pending,
                "completed": stats.completed,
                "high_priority": stats.high_priority_open,
            },
            recent_orders=orders[:PREVIEW_SIZE],
            highlighted_orders=[o for o in orders if is_high_priority_open(o)][:PREVIEW_SIZE],
        )

    mine = [o for o in orders if is_assigned_to(o, profile.id)]
    pending = [o for o in mine if is_open(o)]
    starred = [a for a in assignments if a.get("worker_id") == profile.id and a.get("starred")]
    return DashboardResponse(
        role=profile.role,
        stats={
            "my_orders": len(mine),
            "pending": len(pending),
            "completed": len(mine) - len(pending),
            "starred": len(starred),
        },
        recent_orders=pending[:PREVIEW_SIZE],
        highlighted_orders=[a["orders"] for a in starred if a.get("orders")][:PREVIEW_SIZE],
    )


class AnalyticsService:
    def __init__(self, supabase: Any, timeout: Optional[float] = None):
        self.supabase = supabase
        self.timeout = timeout

    async def fetch_worker_rows(self, profile: Profile) -> List[Dict[str, Any]]:
        if not capabilities_for(profile.role).is_manager:
            raise NotAuthorizedError("Only managers can view team analytics.")
        if not profile.company_id:
            raise ProfileDegradedError("missing_company")
        return await execute(
            self.supabase.table("profiles")
                .select("id, full_name, order_assignments(id, orders(status, priority, created_at))")
                .eq("company_id", profile.company_id)
                .eq("role", "worker"),
            timeout=self.timeout,
        )
