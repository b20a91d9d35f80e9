from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os
from datetime import datetime

from app.core.config import settings
from app.routers import (
    admin_reviews,
    books,
    goals,
    library,
    profile,
    recommendations,
    reviews,
)
from app.database import init_db

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("bookworm")
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Server fingerprint for debugging
SERVER_BOOT_ID = f"bookworm-backend::{os.getpid()}::{datetime.utcnow().isoformat()}"

app = FastAPI(title="Bookworm API", debug=settings.DEBUG)


# ----------------------------
# CORS
# ----------------------------
cors_origins = settings.cors_origins_list
logger.info("[CORS] allow_origins=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_build_header(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Bookworm-Build"] = settings.BUILD_ID
    return response


# ----------------------------
# Error envelope: {success: false, message}
# ----------------------------
def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"Invalid {field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.info("[VALIDATION] %s %s -> %s", request.method, request.url.path, message)
    return _error_response(400, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] %s %s", request.method, request.url.path)

    response = _error_response(500, "Internal server error")

    # Ensure CORS headers are present in error responses
    origin = request.headers.get("origin")
    if origin and origin in cors_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


# ----------------------------
# Routers
# ----------------------------
app.include_router(books.router, prefix="/api")
app.include_router(library.router, prefix="/api")
app.include_router(reviews.router, prefix="/api")
app.include_router(goals.router, prefix="/api")
app.include_router(profile.router, prefix="/api")
app.include_router(recommendations.router, prefix="/api")
app.include_router(admin_reviews.router, prefix="/api/admin")


@app.on_event("startup")
def on_startup() -> None:
    logger.info("[BOOT] %s", SERVER_BOOT_ID)
    init_db()


@app.get("/health")
def health_check():
    return {"status": "ok"}
