"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.logging import setup_logging

# Import routers
from app.api import admin, payments, vouchers

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info(f"Transactions ledger: {settings.TRANSACTIONS_FILE}")
    logger.info(f"Vouchers ledger: {settings.VOUCHERS_FILE}")
    logger.info(f"RCON target: {settings.RCON_HOST}:{settings.RCON_PORT}")
    if not settings.RCON_PASSWORD:
        logger.warning("RCON_PASSWORD is not set - rewards cannot be granted")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Rewards Backend",
    description="Payment and voucher fulfillment for the Minecraft server",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(payments.router)
app.include_router(vouchers.router)
app.include_router(admin.router)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )


@app.get("/")
def root():
    """Service status and available endpoints"""
    return {
        "status": "online",
        "message": "Rewards backend is running",
        "version": app.version,
        "endpoints": {
            "test_rcon": "/api/test-rcon",
            "paypal_webhook": "/api/paypal-webhook",
            "redeem_voucher": "/api/redeem-voucher",
            "create_voucher": "/api/create-voucher",
            "transactions": "/api/transactions",
            "vouchers": "/api/vouchers",
        }
    }


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    # Use reload=True in development for hot reload
    reload = settings.ENVIRONMENT == "development"
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT, reload=reload)
