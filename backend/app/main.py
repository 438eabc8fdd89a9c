from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import time
from .config import settings
from .db import engine
from .models import Base
from .logger import logger
from .routes import fit as fit_routes
from .routes import upload as upload_routes
from .schemas import HealthResponse
from .exceptions import (
    FitAppError,
    fitapp_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)

app = FastAPI(
    title="Fit Simulator API",
    version="1.0.0",
    description="Virtual try-on previews with expiring share links"
)

app.add_exception_handler(FitAppError, fitapp_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(upload_routes.router)
app.include_router(fit_routes.router)

@app.on_event("startup")
async def startup():
    logger.info(
        "Starting Fit Simulator API",
        extra={
            "generation_mode": "live" if settings.GEMINI_LIVE_MODE else "stub",
            "share_link_ttl_days": settings.SHARE_LINK_TTL_DAYS,
        },
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Fit Simulator API")
    await engine.dispose()

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(status="ok")
