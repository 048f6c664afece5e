from fastapi import APIRouter, Depends

from ordertrack.core.app_session import AppSession
from ordertrack.core.dependencies import get_app_session, get_assignments, get_orders, require_ready_profile
from ordertrack.modules.analytics.schemas import AnalyticsResponse, DashboardResponse
from ordertrack.modules.analytics.service import dashboard, order_stats, worker_performance
from ordertrack.modules.assignments.service import AssignmentsResource
from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.orders.service import OrdersResource
from ordertrack.modules.orders.visibility import is_assigned_to
from ordertrack.modules.profiles.schemas import Profile

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("", response_model=AnalyticsResponse)
async def get_analytics(
    profile: Profile = Depends(require_ready_profile),
    orders: OrdersResource = Depends(get_orders),
    app_session: AppSession = Depends(get_app_session)
):
    """Company analytics for managers; personal statistics for workers"""
    if not capabilities_for(profile.role).is_manager:
        mine = [o for o in orders.items if is_assigned_to(o, profile.id)]
        return AnalyticsResponse(stats=order_stats(mine))
    rows = await app_session.analytics.fetch_worker_rows(profile)
    return AnalyticsResponse(
        stats=order_stats(orders.items),
        workers=worker_performance(rows),
        worker_count=len(rows),
    )


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    profile: Profile = Depends(require_ready_profile),
    orders: OrdersResource = Depends(get_orders),
    assignments: AssignmentsResource = Depends(get_assignments)
):
    return dashboard(profile, orders.items, assignments.items)
