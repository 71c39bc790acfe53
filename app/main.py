from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import CommissionError
from app.database import init_db, async_session_factory, get_db_session


logger = logging.getLogger(__name__)


async def bootstrap_admin(session_factory=None):
    """
    Create the configured admin account and the default rule set on an
    empty database. No-op when BOOTSTRAP_ADMIN_EMAIL is unset.
    """
    if not settings.BOOTSTRAP_ADMIN_EMAIL:
        return

    from app.models.user import UserRole
    from app.schemas.user import UserCreate
    from app.services.rule_set_service import RuleSetService
    from app.services.user_service import UserService

    async with get_db_session(session_factory) as session:
        users = UserService(session)
        if await users.get_by_email(settings.BOOTSTRAP_ADMIN_EMAIL):
            logger.info("Bootstrap admin already exists. Skipping.")
        else:
            await users.create(UserCreate(
                name=settings.BOOTSTRAP_ADMIN_NAME,
                email=settings.BOOTSTRAP_ADMIN_EMAIL,
                role=UserRole.ADMIN,
            ))
            logger.info(f"Created bootstrap admin {settings.BOOTSTRAP_ADMIN_EMAIL}")

        await RuleSetService(session).ensure_default()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()
    await bootstrap_admin()

    yield

    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Users", "description": "Team Leaders, Sales Reps and admins"},
    {"name": "Genealogy", "description": "Reporting lines and the A/B/C downline closure"},
    {"name": "Periods", "description": "Billing months, exchange rates, revenue import and recalculation"},
    {"name": "Rule Sets", "description": "Versioned commission rates"},
    {"name": "Commissions", "description": "Per-manager commission statements"},
    {"name": "Payouts", "description": "Payout requests and approval workflow"},
]

API_DESCRIPTION = """
## Creator Commission API

Monthly commissions for creator managers: personal, downline (A/B/C) and
team bonuses computed in USD and paid in EUR at each period's fixed rate.

### Authentication

All `/api/v1` endpoints require a JWT bearer token whose `sub` is the user id.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Validation failed (cycle, duplicate parent, duplicate payout, ...) |
| 401 | Invalid/expired token |
| 403 | Insufficient role |
| 404 | Period, manager, edge or payout not found |
| 409 | Blocked by configuration (locked period, missing rate or rule set) |
| 422 | Exchange-rate date not reached / request schema invalid |
| 502 | Exchange-rate sources unavailable (fallback offered) |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(CommissionError)
async def commission_error_handler(request: Request, exc: CommissionError):
    """Domain errors become structured responses with the status of their class."""
    if exc.status_code >= 500:
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected failures: log with traceback, answer 500 in the same shape."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "type": type(exc).__name__,
            "details": {"path": str(request.url.path), "method": request.method},
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Database connectivity and the currently active rule set."""
    from sqlalchemy import text
    from datetime import datetime, timezone
    from app.services.rule_set_service import RuleSetService

    checks = {"database": "unknown", "rule_set": "unknown"}
    healthy = True

    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = "connected"

            rule_set = await RuleSetService(session).get_active()
            checks["rule_set"] = rule_set.name if rule_set else "missing"
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        checks["database"] = f"error: {e}"
        healthy = False

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
    if not healthy:
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
