"""
AgriSupply FastAPI Main Application
Entry point for the supply intake REST API
"""
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
import logging
import sys

from agrisupply.core.config import settings
from agrisupply.core.database import check_db_connection, get_db, init_db
from agrisupply.core.exceptions import (
    AuthenticationError,
    BusinessLogicError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from agrisupply.core.logging import setup_logging
from agrisupply.api.v1.api_router import api_router

setup_logging()
logger = logging.getLogger("agrisupply.api")

# Application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## AgriSupply Intake API

    Receiving of agricultural supplies from the gate to the process floor.

    ### Key Features:
    - **Supply intake**: seven-step wizard validated server-side, one transaction per submit
    - **Lots**: generated lot numbers per batch, process lot runs for accepted batches
    - **Quality**: parameter scoring, vehicle inspection, packaging checks, supplier sign-off
    - **Documents**: invoices, signatures and supplier COAs in object storage
    - **Payments**: expected value, payments and reconciliation per supply
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Host checking is skipped in debug so local tools can reach the API
if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


@app.get("/health", tags=["System"])
async def health_check(db: Session = Depends(get_db)):
    """
    Liveness check: database round-trip and storage root
    """
    try:
        db.execute(text("SELECT 1"))
        database_up = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_up = False

    storage_up = settings.STORAGE_ROOT.is_dir()

    return {
        "status": "healthy" if database_up and storage_up else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if database_up else "disconnected",
        "storage": "available" if storage_up else "missing",
        "debug": settings.DEBUG
    }


@app.get("/info", tags=["System"])
async def system_info():
    """Service name, version and feature list"""
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Agricultural supply intake, quality and lot tracking",
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "storage_bucket": settings.STORAGE_BUCKET,
        "features": [
            "Supply Intake Wizard",
            "Lot Numbering",
            "Quality Evaluation",
            "Supplier Sign-off",
            "Supplier COA Tracking",
            "Supply Payments",
            "Process Pipeline"
        ],
    }


@app.on_event("startup")
async def startup_event():
    """
    Verify the database and create missing tables
    """
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting, bucket '{settings.STORAGE_BUCKET}'")

    try:
        if not check_db_connection():
            raise RuntimeError(f"Cannot reach database at {settings.DATABASE_URL.split('@')[-1]}")
        init_db()
        logger.info("Schema ready, accepting supply intake requests")

    except Exception as e:
        logger.error(f"Aborting startup: {e}")
        sys.exit(1)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"{settings.APP_NAME} stopped")


# Exception handlers

@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "step": exc.step})


@app.exception_handler(BusinessLogicError)
async def business_exception_handler(request: Request, exc: BusinessLogicError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AuthenticationError)
async def authentication_exception_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=401, content={"detail": str(exc)}, headers={"WWW-Authenticate": "Bearer"}
    )


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything not mapped above is a 500; details only leak in debug"""
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "type": "server_error"
        }
    )


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agrisupply.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
