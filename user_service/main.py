import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from user_service.base_microservice import BaseMicroservice, get_db_session
from user_service.auth.router import auth_router, users_router, start_auth_service

SERVICE_NAME = "User Service"
VERSION = "1.0.0"

# Create shared base microservice instance
base_service = BaseMicroservice(service_name="main")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Creates tables and seeds roles before serving.
    """
    base_service.log_event("service.startup", {"service": "main"})
    await start_auth_service()
    yield
    base_service.log_event("service.shutdown", {"service": "main"})


app = FastAPI(
    title="User Service API",
    description="User authentication and profile management service",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")


async def check_database(db: AsyncSession) -> dict:
    try:
        await db.execute(text("SELECT 1"))
        return {"name": "database", "status": "Healthy"}
    except Exception as e:
        base_service.log_error(e, context="Health check")
        return {"name": "database", "status": "Unhealthy", "exception": str(e)}


@app.get("/", tags=["root"])
async def root():
    """Root endpoint returning service information."""
    return base_service.mcp_response(
        message=SERVICE_NAME,
        data={
            "service": SERVICE_NAME,
            "version": VERSION,
            "status": "running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@app.get("/health", tags=["health"])
async def health_check(db: AsyncSession = Depends(get_db_session)):
    """Overall health: process plus database."""
    checks = [{"name": "self", "status": "Healthy"}, await check_database(db)]
    healthy = all(c["status"] == "Healthy" for c in checks)
    return base_service.mcp_response(
        message="System health",
        status="ok" if healthy else "error",
        data={"status": "Healthy" if healthy else "Unhealthy", "checks": checks},
        status_code=200 if healthy else 503,
    )


@app.get("/health/live", tags=["health"])
async def health_live():
    """Liveness: the process is serving requests."""
    return base_service.mcp_response(message="alive", data={"status": "Healthy"})


@app.get("/health/ready", tags=["health"])
async def health_ready(db: AsyncSession = Depends(get_db_session)):
    """Readiness: the database answers."""
    check = await check_database(db)
    healthy = check["status"] == "Healthy"
    return base_service.mcp_response(
        message="ready" if healthy else "not ready",
        status="ok" if healthy else "error",
        data=check,
        status_code=200 if healthy else 503,
    )


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("user_service.main:app", host="0.0.0.0", port=8000, reload=True)
