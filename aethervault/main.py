"""
AetherVault share API.

Owners upload client-side encrypted files and recipients prove possession
of a phone number with an SMS passcode before the decryption-enabling
metadata is released.
"""
import logging
import logging.config
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aethervault.api.routers import blobs, files, invitations, passcodes
from aethervault.core.config import get_settings
from aethervault.core.errors import RateLimited, ShareError
from aethervault.db.base import Base
from aethervault.db.session import engine

settings = get_settings()


def _configure_logging() -> None:
    """Console logging, plus a rotating file when a log directory is configured."""
    log_level = settings.log_level.upper()
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": log_level,
        },
    }
    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "level": log_level,
            "filename": str(log_dir / "access.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            }
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": log_level,
        },
        "loggers": {
            "uvicorn.access": {
                "handlers": list(handlers),
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": list(handlers),
                "level": log_level,
                "propagate": False,
            },
        },
    })


_configure_logging()

logger = logging.getLogger(__name__)

docs_url = "/docs" if settings.enable_docs else None
redoc_url = "/redoc" if settings.enable_docs else None
openapi_url = "/openapi.json" if settings.enable_docs else None

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url=docs_url, redoc_url=redoc_url, openapi_url=openapi_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.middleware("http")
async def no_store(request: Request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(ShareError)
async def share_error_handler(request: Request, exc: ShareError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.detail}")
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.remaining_minutes * 60)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid input")
    detail = f"{location}: {message}" if location else message
    return JSONResponse(status_code=400, content={"error": "validation_error", "detail": detail})


app.include_router(files.router)
app.include_router(passcodes.router)
app.include_router(invitations.router)

if settings.blob_backend.lower() == "memory":
    app.include_router(blobs.router)


@app.get("/health")
def health():
    """Health check for load balancers."""
    return {"status": "healthy"}


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.app_name} started (blob backend: {settings.blob_backend}, notifications: {settings.notification_backend})")
