import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ordertrack.config import settings
from ordertrack.core.app_session import build_app_session
from ordertrack.core.errors import OrderTrackError
from ordertrack.core.limiter import limiter
from ordertrack.modules.auth import routes as auth_routes
from ordertrack.modules.profiles import routes as profiles_routes
from ordertrack.modules.orders import routes as orders_routes
from ordertrack.modules.assignments import routes as assignments_routes
from ordertrack.modules.buy_list import routes as buy_list_routes
from ordertrack.modules.team import routes as team_routes
from ordertrack.modules.analytics import routes as analytics_routes
from ordertrack.modules.live import routes as live_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(OrderTrackError)
async def ordertrack_exception_handler(request: Request, exc: OrderTrackError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(profiles_routes.router, prefix="/api/v1")
app.include_router(orders_routes.router, prefix="/api/v1")
app.include_router(assignments_routes.router, prefix="/api/v1")
app.include_router(buy_list_routes.router, prefix="/api/v1")
app.include_router(team_routes.router, prefix="/api/v1")
app.include_router(analytics_routes.router, prefix="/api/v1")
app.include_router(live_routes.router)


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    if getattr(app.state, "app_session", None) is None:
        app.state.app_session = await build_app_session()
    # serve requests while the session loads; the gate answers "loading" meanwhile
    app.state.session_load = app.state.app_session.start_in_background()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")
    session_load = getattr(app.state, "session_load", None)
    if session_load is not None and not session_load.done():
        session_load.cancel()
    app_session = getattr(app.state, "app_session", None)
    if app_session is not None:
        await app_session.stop()


@app.get("/")
async def root():
    return {"message": "Welcome to ordertrack", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness check: ready once the session has left the loading state."""
    app_session = getattr(app.state, "app_session", None)
    if app_session is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return {"status": "ready", "session": app_session.gate.state.value}
