from fastapi import APIRouter, Depends, Request

from ordertrack.config import settings
from ordertrack.core.app_session import AppSession
from ordertrack.core.dependencies import get_app_session
from ordertrack.core.limiter import limiter
from ordertrack.modules.auth.schemas import (
    LoginRequest, LogoutResponse, RegisterResponse, ResetPasswordRequest
)
from ordertrack.modules.gate.schemas import GateSnapshot
from ordertrack.modules.profiles.schemas import SignUpRequest

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=GateSnapshot)
@limiter.limit(settings.auth_rate_limit)
async def login(
    request: Request,
    login_data: LoginRequest,
    app_session: AppSession = Depends(get_app_session)
):
    """Sign in and return the resulting gate state"""
    return await app_session.sign_in(login_data.email, login_data.password)


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(settings.auth_rate_limit)
async def register(
    request: Request,
    register_data: SignUpRequest,
    app_session: AppSession = Depends(get_app_session)
):
    """Register a new user and set up their profile and company"""
    user, record = await app_session.sign_up(register_data)
    if record is None:
        return RegisterResponse(
            user_id=user.id,
            email=register_data.email,
            message="Account created! Please check your email to confirm it, then sign in.",
            setup_complete=False,
        )
    complete = record.stage == "company_resolved"
    return RegisterResponse(
        user_id=user.id,
        email=register_data.email,
        message="Account created successfully!" if complete else "Account created, but setup is not finished.",
        setup_complete=complete,
        warning=record.last_error,
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(app_session: AppSession = Depends(get_app_session)):
    """Sign out locally, then on the server"""
    warning = await app_session.sign_out()
    return LogoutResponse(message="Logged out successfully", warning=warning)


@router.post("/reset-password")
@limiter.limit(settings.auth_rate_limit)
async def reset_password(
    request: Request,
    reset_data: ResetPasswordRequest,
    app_session: AppSession = Depends(get_app_session)
):
    await app_session.reset_password(reset_data.email)
    return {"message": "Password reset email sent. Please check your inbox."}


@router.get("/state", response_model=GateSnapshot)
async def get_state(app_session: AppSession = Depends(get_app_session)):
    """Current gate state; clients render from this"""
    return app_session.snapshot()


@router.post("/retry", response_model=GateSnapshot)
async def retry(app_session: AppSession = Depends(get_app_session)):
    """Reload the session after a timeout"""
    return await app_session.retry()
