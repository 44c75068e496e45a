from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded as SlowAPIRateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import time
import structlog

from adaptiquiz.errors import RateLimitExceeded
from adaptiquiz.routers import quiz as quiz_router
from adaptiquiz.services.logging import configure_logging, log_api_request
from adaptiquiz.services.monitoring import health_checker, get_metrics, REQUEST_COUNT, REQUEST_DURATION
from adaptiquiz.middleware.rate_limit import limiter

# Configure logging
configure_logging()
logger = structlog.get_logger()

app = FastAPI(
    title="AdaptiQuiz",
    description="AI-generated multiple-choice quizzes from your notes and documents",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Per-IP ceiling for every route
app.state.limiter = limiter
app.add_exception_handler(SlowAPIRateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limit_response", path=request.url.path, retry_after=exc.retry_after)
    return JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded", "message": str(exc), "retry_after": exc.retry_after},
        headers=exc.headers,
    )


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    log_api_request(request)

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()
    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(process_time)

    log_api_request(request, response, process_time)
    return response


# ----------------- Health & Monitoring Endpoints -----------------
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return health_checker.get_health_status()


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return get_metrics()


# ----------------- Routers -----------------
app.include_router(quiz_router.router)
