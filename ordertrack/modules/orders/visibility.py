"""Which orders a profile may see, and the order-list filters."""

from typing import Any, Dict, Iterable, List, Optional

from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.profiles.schemas import Profile

GENERAL = "general"


def is_assigned_to(order: Dict[str, Any], worker_id: str) -> bool:
    return any(a.get("worker_id") == worker_id for a in order.get("order_assignments") or [])


def is_visible(order: Dict[str, Any], profile: Profile) -> bool:
    if not profile.company_id or order.get("company_id") != profile.company_id:
        return False
    if capabilities_for(profile.role).is_manager:
        return True
    return is_assigned_to(order, profile.id) or order.get("assignment_type") == GENERAL


def visible_orders(orders: Iterable[Dict[str, Any]], profile: Profile) -> List[Dict[str, Any]]:
    """Managers: every company order. Workers: own-assigned plus general company orders."""
    return [order for order in orders if is_visible(order, profile)]


def own_assignment(order: Dict[str, Any], worker_id: str) -> Optional[Dict[str, Any]]:
    for assignment in order.get("order_assignments") or []:
        if assignment.get("worker_id") == worker_id:
            return assignment
    return None


def search_orders(
    orders: Iterable[Dict[str, Any]],
    status: Optional[str] = None,
    term: Optional[str] = None,
) -> List[Dict[str, Any]]:
    result = list(orders)
    if status and status != "all":
        result = [o for o in result if o.get("status") == status]
    if term:
        needle = term.strip().lower()
        fields = ("title", "description", "client_name", "category")
        result = [
            o for o in result
            if any(needle in (o.get(field) or "").lower() for field in fields)
        ]
    return result
