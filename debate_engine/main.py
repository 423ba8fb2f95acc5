"""
debate_engine/main.py
FastAPI application: round pairing and ballot adjudication API
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from debate_engine import __version__
from debate_engine.config.feature_flags import FeatureFlags
from debate_engine.config.settings import get_settings
from debate_engine.core.rate_limit import limiter
from debate_engine.database import close_db, init_db
from debate_engine.errors import APIError, ErrorCode
from debate_engine.routes import router as api_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting debate engine...")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    yield

    logger.info("Shutting down debate engine...")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database connection: {str(e)}")


app = FastAPI(
    title="Debate Tournament Engine",
    description="Round pairing and ballot adjudication for debate tournaments",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
]
origins.extend(settings.allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request body or parameters are malformed",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": error_details}
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Error",
            "message": str(exc.detail),
            "code": ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.NOT_FOUND
        }
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": __version__,
        "features": FeatureFlags.get_all_flags(),
    }


app.include_router(api_router, prefix="/api")
