import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from db import create_db_and_tables
from errors import ClaimError
from logging_config import logging_middleware, setup_logging
from routers import auth, claims, donations, notifications, users

setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="ZeroHunger")


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    return await logging_middleware(request, call_next)


@app.exception_handler(ClaimError)
async def claim_error_handler(request: Request, exc: ClaimError):
    """Business-rule violations become typed 4xx/503 responses."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(donations.router, prefix="/donations")
app.include_router(claims.router, prefix="/claims")
app.include_router(notifications.router, prefix="/notifications")
