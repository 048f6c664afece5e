"""
Core dependencies for route protection and capability checks
"""

from fastapi import Depends, Request
from typing import Any
import logging

from ordertrack.core.app_session import AppSession
from ordertrack.core.errors import NotAuthorizedError, SessionLoadingError
from ordertrack.modules.gate.service import capabilities_for
from ordertrack.modules.orders.service import OrdersResource
from ordertrack.modules.assignments.service import AssignmentsResource
from ordertrack.modules.buy_list.service import BuyListResource
from ordertrack.modules.profiles.schemas import Profile

logger = logging.getLogger(__name__)


def get_app_session(request: Request) -> AppSession:
    app_session = getattr(request.app.state, "app_session", None)
    if app_session is None:
        raise SessionLoadingError()
    return app_session


def require_ready_profile(app_session: AppSession = Depends(get_app_session)) -> Profile:
    """Route guard: only a ready, company-linked profile passes."""
    return app_session.gate.guard()


def require_manager(profile: Profile = Depends(require_ready_profile)) -> Profile:
    if not capabilities_for(profile.role).is_manager:
        raise NotAuthorizedError("Only managers can do that.")
    return profile


def get_orders(
    profile: Profile = Depends(require_ready_profile),
    app_session: AppSession = Depends(get_app_session),
) -> OrdersResource:
    return app_session.resource("orders")


def get_assignments(
    profile: Profile = Depends(require_ready_profile),
    app_session: AppSession = Depends(get_app_session),
) -> AssignmentsResource:
    return app_session.resource("assignments")


def get_buy_list(
    profile: Profile = Depends(require_ready_profile),
    app_session: AppSession = Depends(get_app_session),
) -> BuyListResource:
    return app_session.resource("buy-list")


def get_current_user(app_session: AppSession = Depends(get_app_session)) -> Any:
    """Signed in identity regardless of profile state (for profile repair)."""
    return app_session.require_user()
