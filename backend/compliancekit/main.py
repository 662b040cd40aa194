import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from compliancekit.config import settings
from compliancekit.database import close_db, init_db
from compliancekit.exceptions import RequestIdMiddleware, setup_exception_handlers
from compliancekit.login_guard import LoginGuard
from compliancekit.middleware import CorsPolicyMiddleware, SecurityHeadersMiddleware
from compliancekit.rate_limit import RequestThrottle
from compliancekit.routes import auth, consents, dsar, dsar_public, widget
from compliancekit.services.sweeper import start_sweeps, stop_sweeps

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    sweep_tasks = start_sweeps({
        "throttle": (app.state.throttle.sweep, settings.throttle_sweep_interval_seconds),
        "login_guard": (app.state.login_guard.sweep, settings.login_guard_sweep_interval_seconds),
    })
    yield
    await stop_sweeps(sweep_tasks)
    await close_db()


app = FastAPI(title="ComplianceKit API", lifespan=lifespan)

# Process-local limiter state, reached through request.app.state
app.state.throttle = RequestThrottle()
app.state.login_guard = LoginGuard(
    max_attempts=settings.login_max_attempts,
    lockout_seconds=settings.login_lockout_seconds,
    attempt_window_seconds=settings.login_attempt_window_seconds,
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CorsPolicyMiddleware)
# Added last so it wraps everything and every response carries X-Request-ID
app.add_middleware(RequestIdMiddleware)

setup_exception_handlers(app)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(auth.admin_router, prefix="/api/admin", tags=["admin"])
app.include_router(widget.router, prefix="/api/widget", tags=["widget"])
app.include_router(dsar_public.router, prefix="/api/dsar", tags=["dsar-public"])
app.include_router(dsar.router, prefix="/api/dsar-requests", tags=["dsar"])
app.include_router(consents.router, prefix="/api/consents", tags=["consents"])


@app.get("/api/health")
async def health():
    return {"status": "ok"}
