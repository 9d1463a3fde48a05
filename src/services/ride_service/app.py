from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.common.logger import log_error, log_info
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus
from src.services.ride_service.errors import ErrorCategory, RideEngineError
from src.services.ride_service.publisher import build_publisher
from src.services.ride_service.routes import router
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "ride_service"

STATUS_BY_CATEGORY = {
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.FORBIDDEN: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.STORAGE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.publisher = await build_publisher()
    await log_info(f"{SERVICE_NAME} запущен")
    yield
    await close_event_bus()
    await close_db()


app = FastAPI(
    title="Ride Service",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.exception_handler(RideEngineError)
async def ride_engine_error_handler(request: Request, exc: RideEngineError):
    status_code = STATUS_BY_CATEGORY[exc.category]
    if status_code >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc.message}", extra={"error_code": exc.code})
    else:
        await log_info(f"{request.method} {request.url.path}: {exc.code}", extra={"error_code": exc.code})
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(**exc.to_dict()).model_dump(),
    )


@app.get("/health", response_model=HealthStatus)
async def health_check():
    return HealthStatus(service=SERVICE_NAME, version=settings.system.VERSION)


@app.get("/ready", response_model=HealthStatus)
async def readiness_check():
    db_ok = await get_db().health_check()
    if not settings.rabbitmq.RABBITMQ_ENABLED:
        bus_state = "disabled"
    else:
        bus_state = "healthy" if await get_event_bus().health_check() else "unhealthy"

    status = HealthStatus(
        service=SERVICE_NAME,
        status="healthy" if db_ok else "unhealthy",
        version=settings.system.VERSION,
        dependencies={
            "postgres": "healthy" if db_ok else "unhealthy",
            "rabbitmq": bus_state,
        },
    )
    if bus_state == "unhealthy" and db_ok:
        status.status = "degraded"
    return JSONResponse(status_code=200 if db_ok else 503, content=status.model_dump())
