"""
REHABCOACH Backend API
Shoulder rehabilitation motion capture and analysis

FastAPI application entry point with worker threads for non-blocking
video decoding and pose detection.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from starlette.middleware.base import BaseHTTPMiddleware

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Service routers
from motion_service.router import router as motion_router

# Core utilities
from core.config import settings
from core.threading import live_worker_pool, media_worker_pool, ml_worker_pool
from shared.utils import setup_logger

# Setup logging
logger = setup_logger("rehabcoach.main", level=logging.DEBUG)
request_logger = setup_logger("rehabcoach.requests", level=logging.DEBUG)


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        query_string = f"?{request.url.query}" if request.url.query else ""

        request_logger.info(f"➡️  {request.method} {request.url.path}{query_string}")
        request_logger.debug(f"    Client: {client_ip}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            if response.status_code < 300:
                status_emoji = "✅"
            elif response.status_code < 400:
                status_emoji = "↪️"
            elif response.status_code < 500:
                status_emoji = "⚠️"
            else:
                status_emoji = "❌"

            request_logger.info(
                f"{status_emoji} {request.method} {request.url.path} → {response.status_code} ({process_time:.1f}ms)"
            )

            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.exception(
                f"💥 {request.method} {request.url.path} → ERROR: {type(e).__name__}: {str(e)} ({process_time:.1f}ms)"
            )
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # ===== STARTUP =====
    logger.info(f"🚀 {settings.APP_NAME} API starting up...")

    # Scratch directory for uploaded clips
    Path(settings.UPLOAD_TMP_DIR).mkdir(parents=True, exist_ok=True)

    if not Path(settings.POSE_MODEL_PATH).is_file():
        logger.warning(f"⚠️ Pose model not found at {settings.POSE_MODEL_PATH}; analysis requests will fail")

    logger.info(f"✅ {settings.APP_NAME} API ready!")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    logger.info(f"👋 {settings.APP_NAME} API shutting down...")

    # Shutdown thread pools
    media_worker_pool.shutdown(wait=True)
    ml_worker_pool.shutdown(wait=True)
    live_worker_pool.shutdown(wait=True)

    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="REHABCOACH API",
    description="Shoulder rehabilitation - motion capture and biomechanical analysis",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "rehabcoach-api",
        "pose_model": "available" if Path(settings.POSE_MODEL_PATH).is_file() else "missing",
    }


@app.get("/stats")
async def get_stats():
    """Get service statistics."""
    return {
        "media_pool": media_worker_pool.get_stats(),
        "ml_pool": ml_worker_pool.get_stats(),
        "live_pool": live_worker_pool.get_stats(),
    }


# Include service routers
app.include_router(motion_router, prefix="/api/motion", tags=["Motion Service"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
