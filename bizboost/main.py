from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from bizboost.auth import cleanup_expired_sessions
from bizboost.config import get_settings
from bizboost.database import SessionLocal, init_db
from bizboost.errors import AuthError
from bizboost.logging import configure_logging, get_logger
from bizboost.routers import auth_router, favourites_router, users_router

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Startup: create tables and drop sessions that lapsed while we were down
    init_db()
    db = SessionLocal()
    try:
        cleanup_expired_sessions(db)
    finally:
        db.close()
    logger.info("startup_complete", environment=settings.environment)
    yield


app = FastAPI(
    title="Byte-Sized Business Boost",
    description="Guest, password and Google sessions for the business directory",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
# In production, restrict origins to your frontend domain
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(AuthError)
async def handle_auth_error(request: Request, exc: AuthError):
    log_fn = logger.error if exc.status_code >= 500 else logger.warning
    log_fn(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        kind=exc.kind,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "kind": exc.kind},
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        fields=[".".join(str(part) for part in e.get("loc", ())) for e in errors],
    )
    return JSONResponse(
        status_code=400,
        content={"error": message, "kind": "validation_error"},
    )


# Register routers
app.include_router(auth_router.router)
app.include_router(users_router.router)
app.include_router(favourites_router.router)


@app.get("/")
async def root():
    """
    Health check endpoint.
    """
    return {
        "status": "running",
        "version": "1.0.0"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bizboost.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
