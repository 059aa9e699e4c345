import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_clover,  # noqa: F401
    models_payroll,  # noqa: F401
    models_pnl,  # noqa: F401
    models_square,  # noqa: F401
    models_toast,  # noqa: F401
)
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.accounting.router import router as accounting_router
from .domain.ai.router import router as ai_router
from .domain.billing.router import router as billing_router
from .domain.billing.router import webhook_router as stripe_webhook_router
from .domain.outflows.router import router as outflows_router
from .domain.payroll.router import webhook_router as gusto_webhook_router
from .domain.pnl.router import router as pnl_router
from .domain.pos.router import router as pos_router
from .domain.pos.router import webhook_router as pos_webhook_router
from .domain.restaurants.router import router as restaurants_router
from .domain.rules.router import router as rules_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Another worker may have created the tables first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Restaurant Back-Office API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error in the success/error envelope"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Body, query and path validation failures share the error envelope"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx can hold the raw exception raised by a validator
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} failed: {e}")
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    if request.url.path.startswith("/webhooks/"):
        logger.info(f"📥 {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(restaurants_router)
app.include_router(accounting_router)
app.include_router(rules_router)
app.include_router(outflows_router)
app.include_router(pos_router)
app.include_router(pnl_router)
app.include_router(ai_router)
app.include_router(billing_router)

# Vendor webhooks
app.include_router(pos_webhook_router)
app.include_router(stripe_webhook_router)
app.include_router(gusto_webhook_router)


@app.get("/")
def root():
    return {"success": True, "message": "Restaurant Back-Office API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
