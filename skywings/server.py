from contextlib import asynccontextmanager
from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError
import logging

from .config import settings
from .database import init_db, close_db
from .redis_service import redis_service
from .api.routes import bookings, flights

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("✅ Database ready")
    if settings.flight_lock_backend == "redis":
        await redis_service.connect()
    yield
    await redis_service.disconnect()
    await close_db()


# Create the main app
app = FastAPI(title="SkyWings Booking API", version="1.0.0", lifespan=lifespan)
api_router = APIRouter(prefix="/api")


# Health Check
@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "flight_lock_backend": settings.flight_lock_backend,
        "redis": await redis_service.ping(),
        "dry_run": settings.payments_dry_run
    }


# Include routers
app.include_router(api_router)
app.include_router(bookings.router)
app.include_router(flights.router)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": {"error": "STORAGE_ERROR", "message": "Database error"}})


@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    logger.error(f"Redis error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": {"error": "STORAGE_ERROR", "message": "Lock service error"}})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
