from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import get_settings, validate_startup
from errors.exceptions import AppException
from errors.handlers import register_exception_handlers
from event_endpoints import router as events_router, get_alert_notifier
from health.service import HealthCheckService
from middleware.request_id import RequestIDMiddleware, REQUEST_ID_HEADER
from services.elasticsearch_service import get_elasticsearch_service
from telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "Device Events API"
SERVICE_VERSION = "1.0.0"

settings = get_settings()

# Structured JSON logging for every module
telemetry_service = initialize_telemetry(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and connect to Elasticsearch on startup."""
    logger.info(f"Starting {SERVICE_NAME}...")
    validate_startup()

    try:
        get_elasticsearch_service()
    except AppException as e:
        # Keep serving; readiness reports the outage and the next request retries the connection
        logger.error(f"Elasticsearch unavailable at startup: {e.message}")

    yield

    await get_alert_notifier().drain()
    logger.info(f"Shutting down {SERVICE_NAME}...")


app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        REQUEST_ID_HEADER,
    ],
    expose_headers=[REQUEST_ID_HEADER],
    max_age=600,
)

# Added after CORS so it wraps every request
app.add_middleware(RequestIDMiddleware)

health_check_service = HealthCheckService(
    es_service_provider=get_elasticsearch_service,
    check_timeout=5.0
)

app.include_router(events_router)


@app.get("/")
async def root():
    return {"message": f"{SERVICE_NAME} is running"}


@app.get("/health")
async def health_basic():
    """Returns 200 while the service accepts requests."""
    result = await health_check_service.check_health()
    return {
        "status": result["status"],
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": result["timestamp"]
    }


@app.get("/health/ready")
async def health_ready():
    """
    Readiness check.

    Returns 503 with the failure reason when Elasticsearch is unreachable.
    """
    health_status = await health_check_service.check_readiness()
    response_data = {
        "status": health_status.status,
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": health_status.timestamp.isoformat() + "Z",
        "dependencies": [dep.to_dict() for dep in health_status.dependencies]
    }

    if health_status.status == "unhealthy":
        response_data["failure_reasons"] = [
            {"dependency": dep.name, "error": dep.error}
            for dep in health_status.dependencies
            if not dep.healthy
        ]
        return JSONResponse(status_code=503, content=response_data)

    return response_data


@app.get("/health/live")
async def health_live():
    result = await health_check_service.check_liveness()
    return {
        "status": result["status"],
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": result["timestamp"]
    }


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
