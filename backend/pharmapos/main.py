"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from pharmapos.core.config import settings
from pharmapos.core.database import init_db
from pharmapos.core.exceptions import SettlementError
from pharmapos.core.rate_limit import RateLimitMiddleware
from pharmapos.api.v1 import tenants, settings as settings_router, inventory, crm, sales, credit

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting up...")
    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting middleware (must be after CORS)
app.add_middleware(RateLimitMiddleware)


# Exception handlers
@app.exception_handler(SettlementError)
async def settlement_exception_handler(request: Request, exc: SettlementError):
    logger.warning(f"{request.method} {request.url.path} rejected [{exc.code}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "code": "INTERNAL_ERROR"}
    )


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION, "currency": settings.CURRENCY_CODE}


# Include routers
app.include_router(tenants.router, prefix="/api/v1")
app.include_router(settings_router.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(crm.router, prefix="/api/v1")
app.include_router(sales.router, prefix="/api/v1")
app.include_router(credit.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
