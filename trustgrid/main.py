"""
TrustGrid — API Server
Testimonial collection, AI scoring, verification and public walls.

Start with:
    uvicorn trustgrid.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from trustgrid.config import settings
from trustgrid.deps import uses_memory_backend
from trustgrid.errors import TrustGridError
from trustgrid.api.testimonials import router as testimonials_router
from trustgrid.api.public import router as public_router
from trustgrid.api.settings import router as settings_router
from trustgrid.api.analysis import router as analysis_router

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)
logger = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("platform_starting", version=VERSION, backend=settings.STORE_BACKEND)

    if not uses_memory_backend():
        try:
            from trustgrid.db.neo4j import init_schema
            init_schema()
        except Exception as e:
            logger.warning("neo4j_init_failed", error=str(e))

    yield

    if not uses_memory_backend():
        from trustgrid.db.neo4j import close
        close()
    logger.info("platform_stopped")


app = FastAPI(
    title="TrustGrid — Verified Testimonials",
    description="Collect, score and verify testimonials, and publish them on public walls.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "Retry-After"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())[:8]
    start = time.time()
    request.state.request_id = request_id
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 2)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"
    if request.url.path != "/health":
        logger.info("request",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                    request_id=request_id)
    return response


@app.exception_handler(TrustGridError)
async def trustgrid_error_handler(request: Request, exc: TrustGridError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    body = exc.to_dict()
    body["request_id"] = getattr(request.state, "request_id", "unknown")
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception",
                 path=request.url.path,
                 error=str(exc),
                 type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "Something went wrong. We've been notified.",
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


app.include_router(testimonials_router)
app.include_router(settings_router)
app.include_router(analysis_router)
app.include_router(public_router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": VERSION,
        "backend": settings.STORE_BACKEND,
        "analyzer": settings.analyzer_enabled,
        "email": settings.email_enabled,
    }
