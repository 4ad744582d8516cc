import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
# This is needed for relationships between models in different files
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
    models_quickbooks,  # noqa: F401
)
from .database import Base, engine
from .domain.quickbooks import router as quickbooks_router
from .domain.quickbooks import webhook_router as quickbooks_webhook_router
from .domain.quickbooks.exceptions import QuickBooksError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="QuickBooks Sync API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(QuickBooksError)
async def quickbooks_exception_handler(request: Request, exc: QuickBooksError):
    """
    Sync failures are answered with 200 and success=false so the UI can show
    a summary instead of a network error.
    """
    logger.warning(f"⚠️ QuickBooks sync failed on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=200, content=exc.to_response())


# CORS configuration
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(quickbooks_router)
app.include_router(quickbooks_webhook_router)


@app.get("/")
def root():
    return {"message": "QuickBooks Sync API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
