"""
FastAPI Application Entry Point - Shop Core
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from shopcore import __version__
from shopcore.config import settings
from shopcore.database import init_db
from shopcore.api import health

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Shop Core",
    description="Order, inventory, coupon and refund consistency service",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.on_event("startup")
def startup_event():
    """Initialize database on startup"""
    logger.info("Starting %s...", settings.SERVICE_NAME)
    init_db()
    logger.info("Database initialized")
    logger.info("%s is running on port %s", settings.SERVICE_NAME, settings.SERVICE_PORT)


@app.on_event("shutdown")
def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down %s...", settings.SERVICE_NAME)
