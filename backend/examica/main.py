from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

from examica.core.config import settings
from examica.core.database import create_db_and_tables
from examica.core.errors import AuthenticationRequired, ExamicaError, RateLimited
from examica.api.v1.api import api_router
from examica.api.v1.endpoints import health
from examica.middleware.rate_limiting import RateLimitMiddleware
from examica.services.container import build_services

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Examica API",
    description="Exam session engine: timed sessions, answer buffering, scoring and integrity monitoring",
    version="1.0.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None
)

app.state.services = build_services(settings)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamicaError)
async def examica_exception_handler(request: Request, exc: ExamicaError):
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, AuthenticationRequired):
        headers["WWW-Authenticate"] = "Bearer"

    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers or None)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        }
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Examica API...")

    await create_db_and_tables()
    logger.info("Database initialized")

    cache_health = await app.state.services.cache_healthy()
    if cache_health is None:
        logger.info("Running with in-process answer cache and rate limiter")
    elif cache_health:
        logger.info("Cache connection established")
    else:
        logger.warning("Cache connection failed - answers will be written through to the database")

    logger.info("Examica API startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Examica API...")
    try:
        await app.state.services.aclose()
        logger.info("Session timers and cache connections closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    logger.info("Examica API shutdown completed")


app.include_router(api_router, prefix="/api/v1")
app.include_router(health.router, prefix="/health", tags=["health"])


@app.get("/")
async def read_root():
    return {
        "message": "Welcome to the Examica API!",
        "version": "1.0.0",
    }
